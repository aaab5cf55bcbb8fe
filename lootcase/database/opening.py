"""Case opening and inventory liquidation.

Both operations expect to run inside one database transaction (see
``helper.db_helper.transaction``); a failure at any step rolls every write back,
so a crash between the balance update and the recording writes leaves nothing
behind.
"""

import logging

from lootcase.database.case import get_active_case, get_case_items
from lootcase.database.history import (
    record_case_transaction,
    record_live_feed,
    record_opening_history,
)
from lootcase.database.inventory import (
    NoItemsToSellError,
    add_inventory_item,
    mark_items_sold,
    select_sellable_items,
)
from lootcase.database.profile import (
    InsufficientBalanceError,
    apply_balance_delta,
    get_balance,
    get_display_name,
)
from lootcase.game.draw import RNG, RandomSource, draw
from lootcase.helper.db_helper import DB
from lootcase.schema.db import CaseItem, OpenResult, SellResult, badge_data

logger = logging.getLogger(__name__)


class InvalidSellRequestError(ValueError): ...


def won_item_data(item: CaseItem) -> dict:
    return {
        "id": item.id,
        "item_type": item.item_type,
        "badge_id": item.badge_id,
        "coin_amount": item.coin_amount,
        "rarity": item.rarity,
        "display_value": item.display_value,
        "badge": badge_data(item.reward),
    }


async def open_case(
    conn: DB, user_id: str, case_id: str, rng: RandomSource = RNG.random
) -> OpenResult:
    case = await get_active_case(conn, case_id)
    balance = await get_balance(conn, user_id)
    if balance < case.price:
        raise InsufficientBalanceError("Insufficient coins")

    pool = await get_case_items(conn, case_id)
    won = draw(pool, rng)

    # Price and any coin reward land in a single conditional write.
    delta = -case.price + (won.coin_amount or 0)
    new_balance = await apply_balance_delta(conn, user_id, delta, expected=balance)

    # Coin rewards are kept in the inventory too, for audit parity.
    _ = await add_inventory_item(conn, user_id, won, case_id)
    _ = await record_case_transaction(
        conn, user_id, case_id, [won_item_data(won)], won.display_value
    )
    await record_opening_history(conn, user_id, case_id, case.price)
    await record_live_feed(
        conn,
        user_id,
        await get_display_name(conn, user_id),
        case.name,
        won.name,
        won.rarity,
        won.display_value,
    )
    logger.info(
        "User %s opened case %s for %d and won %s (%s), balance %d -> %d",
        user_id,
        case_id,
        case.price,
        won.id,
        won.rarity,
        balance,
        new_balance,
    )
    return OpenResult(won, new_balance)


async def sell_items(
    conn: DB,
    user_id: str,
    item_ids: list[str] | None = None,
    sell_all: bool = False,
) -> SellResult:
    if sell_all == bool(item_ids):
        raise InvalidSellRequestError("Item IDs required, or sellAll without item IDs")

    items = await select_sellable_items(conn, user_id, None if sell_all else item_ids)
    if not items:
        raise NoItemsToSellError("No items found to sell")

    total_value = sum((value for _, value in items), 0)
    new_balance = await apply_balance_delta(conn, user_id, total_value)
    _ = await mark_items_sold(conn, user_id, [item_id for item_id, _ in items])
    logger.info(
        "User %s sold %d items for %d, balance now %d",
        user_id,
        len(items),
        total_value,
        new_balance,
    )
    return SellResult(len(items), total_value, new_balance)
