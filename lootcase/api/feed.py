from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Query

from lootcase.database.history import LIVE_FEED_MAX, list_live_feed
from lootcase.helper.db_helper import DB, get_conn
from lootcase.helper.errors import install_error_handlers
from lootcase.schema.db import LiveFeedEntry

feed_app = install_error_handlers(FastAPI())

public_router = APIRouter()


@public_router.get("/live")
async def live_feed(
    conn: Annotated[DB, Depends(get_conn)],
    limit: Annotated[int, Query(ge=1, le=LIVE_FEED_MAX)] = 20,
) -> list[LiveFeedEntry]:
    return await list_live_feed(conn, limit)


feed_app.include_router(public_router)
