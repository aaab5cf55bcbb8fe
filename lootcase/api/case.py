from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, HTTPException

from lootcase.database.case import CaseNotFoundError, get_active_case, get_case_items, list_active_cases
from lootcase.database.opening import won_item_data
from lootcase.helper.db_helper import DB, get_conn
from lootcase.helper.errors import install_error_handlers
from lootcase.schema.db import Case

case_app = install_error_handlers(FastAPI())

public_router = APIRouter()


@public_router.get("/")
async def list_cases(conn: Annotated[DB, Depends(get_conn)]) -> list[Case]:
    return await list_active_cases(conn)


@public_router.get("/{case_id}/items")
async def list_case_items(conn: Annotated[DB, Depends(get_conn)], case_id: str) -> list[dict]:
    try:
        _ = await get_active_case(conn, case_id)
    except CaseNotFoundError as exc:
        raise HTTPException(400, str(exc))
    return [
        {**won_item_data(item), "case_id": item.case_id, "drop_rate": item.drop_rate}
        for item in await get_case_items(conn, case_id)
    ]


case_app.include_router(public_router)
