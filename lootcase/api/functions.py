import logging
from dataclasses import dataclass
from typing import Annotated, Optional

from typing_extensions import TypedDict

from fastapi import APIRouter, Depends, FastAPI, HTTPException

from lootcase.database.case import CaseNotFoundError
from lootcase.database.inventory import InventoryConflictError, NoItemsToSellError
from lootcase.database.opening import (
    InvalidSellRequestError,
    open_case,
    sell_items,
    won_item_data,
)
from lootcase.database.profile import (
    BalanceConflictError,
    InsufficientBalanceError,
    ProfileNotFoundError,
)
from lootcase.game.draw import RNG, PoolConfigurationError, RandomSource
from lootcase.helper.db_helper import DB, get_tx_conn
from lootcase.helper.errors import install_error_handlers
from lootcase.helper.jwt_helper import get_user

logger = logging.getLogger(__name__)

functions_app = install_error_handlers(FastAPI())

protected_router = APIRouter(dependencies=[Depends(get_user)])


def get_rng() -> RandomSource:
    return RNG.random


@dataclass
class OpenCaseReq:
    caseId: str


@dataclass
class SellItemsReq:
    itemIds: Optional[list[str]] = None
    sellAll: bool = False


class OpenCaseResp(TypedDict):
    success: bool
    item: dict
    newBalance: str


class SellItemsResp(TypedDict):
    success: bool
    itemsSold: int
    coinsEarned: str
    newBalance: str


@protected_router.post("/open-case")
async def handle_open_case(
    conn: Annotated[DB, Depends(get_tx_conn)],
    user_id: Annotated[str, Depends(get_user)],
    rng: Annotated[RandomSource, Depends(get_rng)],
    req: OpenCaseReq,
) -> OpenCaseResp:
    if not req.caseId:
        raise HTTPException(400, "Case ID is required")
    try:
        result = await open_case(conn, user_id, req.caseId, rng)
    except (CaseNotFoundError, ProfileNotFoundError, PoolConfigurationError) as exc:
        logger.warning("Open case %s failed for %s", req.caseId, user_id, exc_info=True)
        raise HTTPException(400, str(exc))
    except InsufficientBalanceError:
        logger.warning("Open case %s failed for %s", req.caseId, user_id, exc_info=True)
        raise HTTPException(400, "Insufficient coins")
    except BalanceConflictError as exc:
        logger.warning("Open case %s conflicted for %s", req.caseId, user_id, exc_info=True)
        raise HTTPException(409, str(exc))
    return {
        "success": True,
        "item": won_item_data(result.item),
        "newBalance": str(result.new_balance),
    }


@protected_router.post("/sell-inventory-item")
async def handle_sell_items(
    conn: Annotated[DB, Depends(get_tx_conn)],
    user_id: Annotated[str, Depends(get_user)],
    req: SellItemsReq,
) -> SellItemsResp:
    try:
        result = await sell_items(conn, user_id, req.itemIds, req.sellAll)
    except (InvalidSellRequestError, NoItemsToSellError, ProfileNotFoundError) as exc:
        logger.warning("Sell items failed for %s", user_id, exc_info=True)
        raise HTTPException(400, str(exc))
    except (BalanceConflictError, InventoryConflictError) as exc:
        logger.warning("Sell items conflicted for %s", user_id, exc_info=True)
        raise HTTPException(409, str(exc))
    return {
        "success": True,
        "itemsSold": result.items_sold,
        "coinsEarned": str(result.coins_earned),
        "newBalance": str(result.new_balance),
    }


functions_app.include_router(protected_router)
