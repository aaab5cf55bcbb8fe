from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI

from lootcase.database.history import list_case_transactions
from lootcase.database.inventory import list_inventory
from lootcase.helper.db_helper import DB, get_conn
from lootcase.helper.errors import install_error_handlers
from lootcase.helper.jwt_helper import get_user
from lootcase.schema.db import CaseTransaction, InventoryItem, badge_data

inventory_app = install_error_handlers(FastAPI())

protected_router = APIRouter(dependencies=[Depends(get_user)])


def _inventory_data(item: InventoryItem) -> dict:
    return {
        "id": item.id,
        "user_id": item.user_id,
        "item_type": item.item_type,
        "badge_id": item.badge_id,
        "coin_amount": item.coin_amount,
        "rarity": item.rarity,
        "estimated_value": item.estimated_value,
        "won_from_case_id": item.won_from_case_id,
        "won_at": item.won_at,
        "sold": item.sold,
        "sold_at": item.sold_at,
        "badge": badge_data(item.reward),
        "case": {"name": item.case_name} if item.case_name is not None else None,
    }


@protected_router.get("/@me")
async def list_own_inventory(
    conn: Annotated[DB, Depends(get_conn)],
    user_id: Annotated[str, Depends(get_user)],
) -> list[dict]:
    return [_inventory_data(item) for item in await list_inventory(conn, user_id)]


@protected_router.get("/transactions/@me")
async def list_own_transactions(
    conn: Annotated[DB, Depends(get_conn)],
    user_id: Annotated[str, Depends(get_user)],
) -> list[CaseTransaction]:
    return await list_case_transactions(conn, user_id, limit=50)


inventory_app.include_router(protected_router)
