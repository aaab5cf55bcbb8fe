import uuid
from datetime import datetime, timezone

from lootcase.database.case import build_reward
from lootcase.helper.db_helper import DB
from lootcase.schema.db import Badge, CaseItem, InventoryItem


class NoItemsToSellError(ValueError): ...


class InventoryConflictError(ValueError): ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def add_inventory_item(conn: DB, user_id: str, item: CaseItem, case_id: str) -> str:
    inventory_id = str(uuid.uuid4())
    _ = await conn.execute(
        """
        INSERT INTO user_inventory(
            id, user_id, item_type, badge_id, coin_amount, rarity, estimated_value, won_from_case_id
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            inventory_id,
            user_id,
            item.item_type,
            item.badge_id,
            item.coin_amount,
            item.rarity,
            item.display_value,
            case_id,
        ),
    )
    return inventory_id


async def list_inventory(conn: DB, user_id: str, *, include_sold: bool = False) -> list[InventoryItem]:
    cur = await conn.execute(
        """
        SELECT
            ui.id,
            ui.user_id,
            ui.item_type,
            ui.badge_id,
            ui.coin_amount,
            ui.rarity,
            ui.estimated_value,
            ui.won_from_case_id,
            ui.won_at,
            ui.sold,
            ui.sold_at,
            b.name,
            b.icon_url,
            b.color,
            c.name
        FROM user_inventory ui
        LEFT JOIN badges b ON b.id = ui.badge_id
        LEFT JOIN cases c ON c.id = ui.won_from_case_id
        WHERE ui.user_id = ? AND (? OR ui.sold = 0)
        ORDER BY ui.won_at DESC, ui.rowid DESC
        """,
        (user_id, int(include_sold)),
    )
    results: list[InventoryItem] = []
    for (
        item_id,
        owner,
        item_type,
        badge_id,
        coin_amount,
        rarity,
        estimated_value,
        case_id,
        won_at,
        sold,
        sold_at,
        badge_name,
        badge_icon,
        badge_color,
        case_name,
    ) in await cur.fetchall():
        badge = (
            Badge(badge_id, badge_name, badge_icon, badge_color)
            if badge_name is not None
            else None
        )
        results.append(
            InventoryItem(
                id=str(item_id),
                user_id=str(owner),
                reward=build_reward(item_type, badge_id, coin_amount, badge),
                rarity=str(rarity),
                estimated_value=int(estimated_value),
                won_from_case_id=case_id,
                won_at=str(won_at),
                sold=bool(sold),
                sold_at=sold_at,
                case_name=case_name,
            )
        )
    return results


async def select_sellable_items(
    conn: DB, user_id: str, item_ids: list[str] | None = None
) -> list[tuple[str, int]]:
    """
    Unsold items owned by ``user_id`` as ``(id, estimated_value)`` pairs.

    With ``item_ids`` the selection is narrowed to those ids; ids that are not
    owned by the user or already sold are skipped.
    """
    query = "SELECT id, estimated_value FROM user_inventory WHERE user_id = ? AND sold = 0"
    params: list[str] = [user_id]
    if item_ids is not None:
        if not item_ids:
            return []
        query += f" AND id IN ({', '.join('?' for _ in item_ids)})"
        params.extend(item_ids)
    query += " ORDER BY rowid ASC"
    cur = await conn.execute(query, tuple(params))
    return [(str(row[0]), int(row[1])) for row in await cur.fetchall()]


async def mark_items_sold(conn: DB, user_id: str, item_ids: list[str]) -> str:
    sold_at = _now()
    cur = await conn.execute(
        f"""
        UPDATE user_inventory SET sold = 1, sold_at = ?
        WHERE user_id = ? AND sold = 0 AND id IN ({', '.join('?' for _ in item_ids)})
        RETURNING id
        """,
        (sold_at, user_id, *item_ids),
    )
    updated = await cur.fetchall()
    if len(updated) != len(item_ids):
        raise InventoryConflictError("Inventory changed during the sale, please try again")
    return sold_at
