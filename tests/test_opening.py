import math
import sqlite3

import asqlite
import pytest

from conftest import count, seed_example
from lootcase.database import opening
from lootcase.database.case import CaseNotFoundError, create_case, create_case_item
from lootcase.database.history import list_case_transactions, list_live_feed, verify_chain
from lootcase.database.inventory import InventoryConflictError, NoItemsToSellError, list_inventory
from lootcase.database.opening import InvalidSellRequestError, open_case, sell_items
from lootcase.database.profile import (
    BalanceConflictError,
    InsufficientBalanceError,
    ProfileNotFoundError,
    apply_balance_delta,
    create_profile,
    get_balance,
)
from lootcase.game.draw import PoolConfigurationError
from lootcase.helper.db_helper import TransactionConflictError, begin, transaction
from lootcase.schema.db import BadgeReward, CoinReward, badge_data

PICK_FIRST = lambda: 0.0  # noqa: E731
PICK_LAST = lambda: math.nextafter(1.0, 0.0)  # noqa: E731


async def test_open_case_badge_win(conn):
    data = await seed_example(conn)
    async with transaction(conn):
        result = await open_case(conn, data["player"].id, data["case"].id, PICK_FIRST)

    assert result.item.id == data["badge_item"].id
    assert isinstance(result.item.reward, BadgeReward)
    assert result.new_balance == 150
    assert await get_balance(conn, data["player"].id) == 150

    inventory = await list_inventory(conn, data["player"].id)
    assert len(inventory) == 1
    assert inventory[0].reward.item_type == "badge"
    assert inventory[0].estimated_value == 40
    assert inventory[0].won_from_case_id == data["case"].id
    assert inventory[0].case_name == "Starter Case"
    assert await count(conn, "case_transactions") == 1
    assert await count(conn, "case_opening_history") == 1
    assert await count(conn, "live_feed") == 1


async def test_open_case_coin_win_credits_balance(conn):
    data = await seed_example(conn)
    async with transaction(conn):
        result = await open_case(conn, data["player"].id, data["case"].id, PICK_LAST)

    assert result.item.id == data["coin_item"].id
    assert result.new_balance == 200 - 50 + 100
    assert await get_balance(conn, data["player"].id) == 250
    inventory = await list_inventory(conn, data["player"].id)
    assert [item.reward for item in inventory] == [CoinReward(100)]


async def test_open_case_records_history_and_feed(conn):
    data = await seed_example(conn)
    async with transaction(conn):
        _ = await open_case(conn, data["player"].id, data["case"].id, PICK_FIRST)

    (tx,) = await list_case_transactions(conn, data["player"].id)
    assert tx.transaction_type == "open"
    assert tx.total_value == 40
    assert tx.items_won[0]["id"] == data["badge_item"].id
    assert tx.items_won[0]["badge"]["name"] == "Badge X"
    assert tx.case_name == "Starter Case"

    row = await (
        await conn.execute("SELECT coins_spent FROM case_opening_history")
    ).fetchone()
    assert row[0] == 50

    (entry,) = await list_live_feed(conn)
    assert entry.username == "Player One"
    assert entry.case_name == "Starter Case"
    assert entry.item_name == "Badge X"
    assert entry.item_rarity == "rare"
    assert entry.item_value == 40


async def test_feed_falls_back_to_username(conn):
    data = await seed_example(conn)
    plain = await create_profile(conn, "plainname", balance=100)
    async with transaction(conn):
        _ = await open_case(conn, plain.id, data["case"].id, PICK_LAST)
    (entry,) = await list_live_feed(conn)
    assert entry.username == "plainname"
    assert entry.item_name == "100 Coins"


async def test_insufficient_funds_writes_nothing(conn):
    data = await seed_example(conn, balance=49)
    with pytest.raises(InsufficientBalanceError):
        async with transaction(conn):
            _ = await open_case(conn, data["player"].id, data["case"].id, PICK_FIRST)

    assert await get_balance(conn, data["player"].id) == 49
    for table in ("user_inventory", "case_transactions", "case_opening_history", "live_feed"):
        assert await count(conn, table) == 0


async def test_exact_balance_is_enough(conn):
    data = await seed_example(conn, balance=50)
    async with transaction(conn):
        result = await open_case(conn, data["player"].id, data["case"].id, PICK_FIRST)
    assert result.new_balance == 0


async def test_inactive_case_is_not_found(conn):
    player = await create_profile(conn, "player", balance=1000)
    case = await create_case(conn, "Retired", 10, active=False)
    _ = await create_case_item(conn, case.id, CoinReward(5), "common", 1, 5)
    with pytest.raises(CaseNotFoundError):
        _ = await open_case(conn, player.id, case.id, PICK_FIRST)


async def test_unknown_profile(conn):
    data = await seed_example(conn)
    with pytest.raises(ProfileNotFoundError):
        _ = await open_case(conn, "nobody", data["case"].id, PICK_FIRST)


async def test_empty_pool_is_configuration_error(conn):
    player = await create_profile(conn, "player", balance=1000)
    case = await create_case(conn, "Empty", 10)
    with pytest.raises(PoolConfigurationError):
        async with transaction(conn):
            _ = await open_case(conn, player.id, case.id, PICK_FIRST)
    assert await get_balance(conn, player.id) == 1000


async def test_crash_after_debit_rolls_everything_back(conn, monkeypatch):
    data = await seed_example(conn)

    async def crash(*args, **kwargs):
        raise RuntimeError("connection lost")

    monkeypatch.setattr(opening, "record_live_feed", crash)
    with pytest.raises(RuntimeError):
        async with transaction(conn):
            _ = await open_case(conn, data["player"].id, data["case"].id, PICK_LAST)

    assert await get_balance(conn, data["player"].id) == 200
    for table in ("user_inventory", "case_transactions", "case_opening_history", "live_feed"):
        assert await count(conn, table) == 0


async def test_huge_balances_keep_precision(conn):
    data = await seed_example(conn, balance=10**30)
    async with transaction(conn):
        result = await open_case(conn, data["player"].id, data["case"].id, PICK_LAST)
    assert result.new_balance == 10**30 + 50
    assert await get_balance(conn, data["player"].id) == 10**30 + 50


async def test_stale_balance_is_a_conflict(conn):
    player = await create_profile(conn, "player", balance=100)
    with pytest.raises(BalanceConflictError):
        _ = await apply_balance_delta(conn, player.id, -10, expected=90)
    assert await get_balance(conn, player.id) == 100


async def test_balance_never_goes_negative(conn):
    player = await create_profile(conn, "player", balance=5)
    with pytest.raises(InsufficientBalanceError):
        _ = await apply_balance_delta(conn, player.id, -6)


async def _win_items(conn, data, n: int) -> list[str]:
    for _ in range(n):
        async with transaction(conn):
            _ = await open_case(conn, data["player"].id, data["case"].id, PICK_FIRST)
    return [item.id for item in await list_inventory(conn, data["player"].id)]


async def test_sell_all_only_touches_own_unsold_items(conn):
    data = await seed_example(conn, balance=1000)
    other = await create_profile(conn, "other", balance=1000)
    async with transaction(conn):
        _ = await open_case(conn, other.id, data["case"].id, PICK_LAST)
    owned = await _win_items(conn, data, 3)
    async with transaction(conn):
        _ = await sell_items(conn, data["player"].id, [owned[0]])
    balance_before = await get_balance(conn, data["player"].id)

    async with transaction(conn):
        result = await sell_items(conn, data["player"].id, sell_all=True)

    assert result.items_sold == 2
    assert result.coins_earned == 80
    assert result.new_balance == balance_before + 80
    assert await list_inventory(conn, data["player"].id) == []
    sold = await list_inventory(conn, data["player"].id, include_sold=True)
    assert len(sold) == 3
    assert all(item.sold and item.sold_at for item in sold)

    other_items = await list_inventory(conn, other.id)
    assert len(other_items) == 1
    assert not other_items[0].sold
    assert await get_balance(conn, other.id) == 1000 - 50 + 100


async def test_selling_twice_fails_second_time(conn):
    data = await seed_example(conn)
    owned = await _win_items(conn, data, 1)
    async with transaction(conn):
        first = await sell_items(conn, data["player"].id, owned)
    assert first.items_sold == 1
    assert first.new_balance == 150 + 40

    with pytest.raises(NoItemsToSellError):
        async with transaction(conn):
            _ = await sell_items(conn, data["player"].id, owned)
    assert await get_balance(conn, data["player"].id) == 190


async def test_foreign_ids_are_skipped(conn):
    data = await seed_example(conn, balance=1000)
    other = await create_profile(conn, "other", balance=1000)
    async with transaction(conn):
        _ = await open_case(conn, other.id, data["case"].id, PICK_FIRST)
    (foreign,) = [item.id for item in await list_inventory(conn, other.id)]
    owned = await _win_items(conn, data, 1)

    async with transaction(conn):
        result = await sell_items(conn, data["player"].id, owned + [foreign, "missing"])
    assert result.items_sold == 1
    assert not (await list_inventory(conn, other.id))[0].sold


@pytest.mark.parametrize(
    ("item_ids", "sell_all"),
    [(None, False), ([], False), (["x"], True)],
)
async def test_sell_request_must_pick_one_mode(conn, item_ids, sell_all):
    player = await create_profile(conn, "player", balance=0)
    with pytest.raises(InvalidSellRequestError):
        _ = await sell_items(conn, player.id, item_ids, sell_all)


async def test_sell_with_nothing_owned(conn):
    player = await create_profile(conn, "player", balance=0)
    with pytest.raises(NoItemsToSellError):
        _ = await sell_items(conn, player.id, sell_all=True)


async def test_crash_between_credit_and_mark_sold(conn, monkeypatch):
    data = await seed_example(conn)
    owned = await _win_items(conn, data, 1)

    async def crash(*args, **kwargs):
        raise RuntimeError("connection lost")

    monkeypatch.setattr(opening, "mark_items_sold", crash)
    with pytest.raises(RuntimeError):
        async with transaction(conn):
            _ = await sell_items(conn, data["player"].id, owned)

    assert await get_balance(conn, data["player"].id) == 150
    assert [item.id for item in await list_inventory(conn, data["player"].id)] == owned


async def test_audit_chain_links_records(conn):
    data = await seed_example(conn, balance=1000)
    _ = await _win_items(conn, data, 3)
    assert await verify_chain(conn)

    txs = await list_case_transactions(conn, data["player"].id)
    assert len(txs) == 3
    assert len({tx.tx for tx in txs}) == 3

    with pytest.raises(sqlite3.DatabaseError):
        _ = await conn.execute("UPDATE case_transactions SET total_value = 0")
    with pytest.raises(sqlite3.DatabaseError):
        _ = await conn.execute("DELETE FROM case_transactions")


async def test_busy_ledger_surfaces_conflict(tmp_path, monkeypatch):
    monkeypatch.setenv("LOOTCASE_TX_RETRIES", "2")
    monkeypatch.setenv("LOOTCASE_TX_BACKOFF", "0.001")
    path = (tmp_path / "busy.db").as_posix()
    async with asqlite.connect(path) as holder, asqlite.connect(path) as waiter:
        _ = await waiter.execute("PRAGMA busy_timeout=0;")
        async with transaction(holder):
            with pytest.raises(TransactionConflictError):
                await begin(waiter)
        await begin(waiter)
        _ = await waiter.execute("ROLLBACK;")


async def test_negative_coin_reward_is_rejected(conn):
    case = await create_case(conn, "Broken", 10)
    with pytest.raises(ValueError):
        _ = await create_case_item(conn, case.id, CoinReward(-5), "common", 1, 0)
    with pytest.raises(sqlite3.IntegrityError):
        _ = await conn.execute(
            """
            INSERT INTO case_items(id, case_id, item_type, coin_amount, rarity, drop_rate, display_value)
            VALUES ('neg', ?, 'coins', -5, 'common', 1, 0)
            """,
            (case.id,),
        )
    assert await count(conn, "case_items") == 0


@pytest.mark.parametrize(
    "error",
    [BalanceConflictError, TransactionConflictError, InventoryConflictError],
)
def test_conflicts_are_store_errors(error):
    assert issubclass(error, ValueError)


async def test_inventory_items_expose_reward_fields(conn):
    data = await seed_example(conn, balance=1000)
    async with transaction(conn):
        _ = await open_case(conn, data["player"].id, data["case"].id, PICK_FIRST)
        _ = await open_case(conn, data["player"].id, data["case"].id, PICK_LAST)
    badge, coins = sorted(await list_inventory(conn, data["player"].id), key=lambda i: i.item_type)
    assert (coins.item_type, coins.coin_amount, coins.badge_id) == ("coins", 100, None)
    assert (badge.item_type, badge.coin_amount, badge.badge_id) == ("badge", None, data["badge"].id)
    assert badge_data(badge.reward) == {"name": "Badge X", "icon_url": "/x.png", "color": "#ff0"}
    assert badge_data(coins.reward) is None
