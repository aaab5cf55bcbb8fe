from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, HTTPException

from lootcase.database.profile import ProfileNotFoundError, get_profile
from lootcase.helper.db_helper import DB, get_conn
from lootcase.helper.errors import install_error_handlers
from lootcase.helper.jwt_helper import get_user
from lootcase.schema.db import Profile

profile_app = install_error_handlers(FastAPI())

protected_router = APIRouter(dependencies=[Depends(get_user)])


@protected_router.get("/@me")
async def get_own_profile(
    conn: Annotated[DB, Depends(get_conn)],
    user_id: Annotated[str, Depends(get_user)],
) -> Profile:
    try:
        return await get_profile(conn, user_id)
    except ProfileNotFoundError as exc:
        raise HTTPException(400, str(exc))


profile_app.include_router(protected_router)
