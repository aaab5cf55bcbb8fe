import os

os.environ.setdefault("JWT_SECRET", "3f9a6c0e5b7d41e2a8c9f0b1d2e3a4b5c6d7e8f9a0b1c2d3e4f5a6b7c8d9e0f1")
os.environ.setdefault("LOOTCASE_TX_BACKOFF", "0.001")

import asqlite
import httpx
import pytest

from lootcase.database.case import create_badge, create_case, create_case_item
from lootcase.database.profile import create_profile
from lootcase.helper.db_helper import DB, close_pool, init_pool, init_schema
from lootcase.main import app
from lootcase.schema.db import BadgeReward, CoinReward


@pytest.fixture
async def conn(tmp_path):
    async with asqlite.connect((tmp_path / "lootcase.db").as_posix()) as conn:
        _ = await conn.execute("PRAGMA foreign_keys=ON;")
        await init_schema(conn)
        yield conn


@pytest.fixture
async def api(tmp_path):
    await init_pool(app, tmp_path / "api.db", size=4)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await close_pool(app)


@pytest.fixture
async def api_conn(api):
    async with app.state.db_pool.acquire() as conn:
        yield conn


async def count(conn: DB, table: str) -> int:
    row = await (await conn.execute(f"SELECT COUNT(*) FROM {table}")).fetchone()
    return int(row[0])


async def seed_example(conn: DB, balance: int = 200) -> dict:
    """
    A 50 coin case holding a 100 coin reward (weight 10) and badge X (weight 90),
    plus a player with ``balance`` coins.
    """
    player = await create_profile(conn, "player", display_name="Player One", balance=balance)
    badge = await create_badge(conn, "Badge X", icon_url="/x.png", color="#ff0")
    case = await create_case(conn, "Starter Case", 50)
    badge_item = await create_case_item(conn, case.id, BadgeReward(badge.id), "rare", 90, 40)
    coin_item = await create_case_item(conn, case.id, CoinReward(100), "legendary", 10, 100)
    await conn.commit()
    return {
        "player": player,
        "badge": badge,
        "case": case,
        "badge_item": badge_item,
        "coin_item": coin_item,
    }
