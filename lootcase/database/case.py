import uuid

from lootcase.game.draw import order_pool
from lootcase.helper.db_helper import DB
from lootcase.schema.db import Badge, BadgeReward, Case, CaseItem, CoinReward, Reward


class CaseNotFoundError(ValueError): ...


_CASE_COLUMNS = "id, name, price, active, description, image_url, order_index, created_at"


def _row_to_case(row) -> Case:
    return Case(
        id=str(row[0]),
        name=str(row[1]),
        price=int(row[2]),
        active=bool(row[3]),
        description=row[4],
        image_url=row[5],
        order_index=int(row[6]),
        created_at=str(row[7]),
    )


def build_reward(
    item_type: str,
    badge_id: str | None,
    coin_amount: int | None,
    badge: Badge | None = None,
) -> Reward:
    if item_type == "badge" and badge_id is not None:
        return BadgeReward(badge_id, badge)
    if item_type == "coins" and coin_amount is not None:
        return CoinReward(int(coin_amount))
    raise ValueError(f"Malformed reward: type={item_type!r} badge={badge_id!r} coins={coin_amount!r}")


async def create_badge(
    conn: DB,
    name: str,
    *,
    icon_url: str | None = None,
    color: str | None = None,
    badge_id: str | None = None,
) -> Badge:
    badge_id = badge_id or str(uuid.uuid4())
    _ = await conn.execute(
        "INSERT INTO badges(id, name, icon_url, color) VALUES (?, ?, ?, ?)",
        (badge_id, name, icon_url, color),
    )
    return Badge(badge_id, name, icon_url, color)


async def create_case(
    conn: DB,
    name: str,
    price: int,
    *,
    active: bool = True,
    description: str | None = None,
    image_url: str | None = None,
    order_index: int = 0,
    case_id: str | None = None,
) -> Case:
    if price < 0:
        raise ValueError("price must be >= 0")
    case_id = case_id or str(uuid.uuid4())
    row = await (
        await conn.execute(
            f"""
            INSERT INTO cases(id, name, price, active, description, image_url, order_index)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING {_CASE_COLUMNS}
            """,
            (case_id, name, price, int(active), description, image_url, order_index),
        )
    ).fetchone()
    return _row_to_case(row)


async def create_case_item(
    conn: DB,
    case_id: str,
    reward: Reward,
    rarity: str,
    drop_rate: float,
    display_value: int,
    *,
    item_id: str | None = None,
) -> CaseItem:
    if drop_rate < 0:
        raise ValueError("drop_rate must be >= 0")
    if display_value < 0:
        raise ValueError("display_value must be >= 0")
    if isinstance(reward, CoinReward) and reward.amount < 0:
        raise ValueError("coin_amount must be >= 0")
    item_id = item_id or str(uuid.uuid4())
    match reward:
        case BadgeReward(badge_id=badge_id):
            badge_id, coin_amount = badge_id, None
        case CoinReward(amount=amount):
            badge_id, coin_amount = None, amount
    _ = await conn.execute(
        """
        INSERT INTO case_items(id, case_id, item_type, badge_id, coin_amount, rarity, drop_rate, display_value)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (item_id, case_id, reward.item_type, badge_id, coin_amount, rarity, drop_rate, display_value),
    )
    return CaseItem(item_id, case_id, reward, rarity, float(drop_rate), display_value)


async def get_active_case(conn: DB, case_id: str) -> Case:
    row = await (
        await conn.execute(
            f"SELECT {_CASE_COLUMNS} FROM cases WHERE id = ? AND active = 1",
            (case_id,),
        )
    ).fetchone()
    if row is None:
        raise CaseNotFoundError("Case not found or inactive")
    return _row_to_case(row)


async def list_active_cases(conn: DB) -> list[Case]:
    cur = await conn.execute(
        f"SELECT {_CASE_COLUMNS} FROM cases WHERE active = 1 ORDER BY order_index ASC, id ASC"
    )
    return [_row_to_case(row) for row in await cur.fetchall()]


async def get_case_items(conn: DB, case_id: str) -> list[CaseItem]:
    """Return the case's pool in draw order, badges joined."""
    cur = await conn.execute(
        """
        SELECT
            ci.id,
            ci.case_id,
            ci.item_type,
            ci.badge_id,
            ci.coin_amount,
            ci.rarity,
            ci.drop_rate,
            ci.display_value,
            b.name,
            b.icon_url,
            b.color
        FROM case_items ci
        LEFT JOIN badges b ON b.id = ci.badge_id
        WHERE ci.case_id = ?
        ORDER BY ci.drop_rate DESC, ci.id ASC
        """,
        (case_id,),
    )
    items: list[CaseItem] = []
    for (
        item_id,
        item_case_id,
        item_type,
        badge_id,
        coin_amount,
        rarity,
        drop_rate,
        display_value,
        badge_name,
        badge_icon,
        badge_color,
    ) in await cur.fetchall():
        badge = (
            Badge(badge_id, badge_name, badge_icon, badge_color)
            if badge_name is not None
            else None
        )
        items.append(
            CaseItem(
                id=str(item_id),
                case_id=str(item_case_id),
                reward=build_reward(item_type, badge_id, coin_amount, badge),
                rarity=str(rarity),
                drop_rate=float(drop_rate),
                display_value=int(display_value),
            )
        )
    return order_pool(items)
