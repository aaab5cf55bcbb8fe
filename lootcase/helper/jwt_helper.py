import logging
import os

import jwt
from dotenv import load_dotenv
from fastapi import HTTPException, Request

from lootcase.crypto.jwt_handler import JWTHandler

load_dotenv()  # pyright: ignore[reportUnusedCallResult]

jwt_handler = JWTHandler(os.environ["JWT_SECRET"])

logger = logging.getLogger(__name__)


class AuthError(HTTPException):
    def __init__(self, detail: str = "Unauthorized", status_code: int = 401):
        super().__init__(status_code=status_code, detail=detail)


async def get_user(request: Request) -> str:
    header = request.headers.get("Authorization")
    if not header:
        raise AuthError("No authorization header")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Unauthorized")
    try:
        jwt_inner = jwt_handler.decode(token.strip())
    except jwt.InvalidTokenError:
        logger.warning("Rejected bearer token", exc_info=True)
        raise AuthError("Unauthorized")
    user_id = jwt_inner.get("user_id")
    if not isinstance(user_id, str) or not user_id:
        raise AuthError("Unauthorized")
    return user_id
