from typing import Final, TypeAlias
from collections.abc import Mapping, Sequence
import jwt
import time

JSON: TypeAlias = Mapping[str, "JSON"] | Sequence["JSON"] | str | None | bool | float | int

ISSUER = "lootcase"
AUDIENCE = "use"


class JWTHandler:
    def __init__(self, secret_key: str):
        self._key: Final[str] = secret_key
        self._algo: Final[str] = "HS256"

    def encode(self, payload: Mapping[str, JSON]) -> str:
        return jwt.encode(dict(payload), self._key, algorithm=self._algo)

    def decode(self, token: str) -> Mapping[str, JSON]:
        return jwt.decode(token, self._key, algorithms=[self._algo], audience=AUDIENCE, issuer=ISSUER)  # pyright: ignore[reportAny]

    def verify(self, token: str) -> bool:
        try:
            _ = self.decode(token)
            return True
        except jwt.InvalidTokenError:
            return False

    def create_user(self, user_id: str, ttl: float = 86400) -> str:
        now = int(time.time())
        payload = {
            "nbf": now,
            "iat": now,
            "exp": now + int(ttl),
            "iss": ISSUER,
            "aud": [AUDIENCE],
            "user_id": user_id,
        }
        return self.encode(payload)
