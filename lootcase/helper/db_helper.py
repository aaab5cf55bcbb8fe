import asyncio
import logging
import os
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TypeAlias

import asqlite
from dotenv import load_dotenv
from fastapi import Request
from fastapi.applications import FastAPI

load_dotenv()  # pyright: ignore[reportUnusedCallResult]

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent.parent / "sql" / "schema.sql"

PRAGMAS = [
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA foreign_keys=ON;",
    "PRAGMA temp_store=MEMORY;",
    "PRAGMA cache_size=-2000;",  # ~2MB
]

DB: TypeAlias = asqlite.ProxiedConnection | asqlite.Connection


class TransactionConflictError(ValueError): ...


def db_path() -> Path:
    return Path(os.environ.get("LOOTCASE_DB_PATH", Path() / "data" / "lootcase.db"))


def _retries() -> int:
    return int(os.environ.get("LOOTCASE_TX_RETRIES", "5"))


def _backoff() -> float:
    return float(os.environ.get("LOOTCASE_TX_BACKOFF", "0.05"))


async def init_schema(conn: DB) -> None:
    _ = await conn.executescript(SCHEMA_PATH.read_text())
    await conn.commit()


async def init_pool(app: FastAPI, path: Path | None = None, size: int | None = None):
    path = path or db_path()
    size = size or int(os.environ.get("LOOTCASE_DB_POOL_SIZE", "8"))
    path.parent.mkdir(parents=True, exist_ok=True)
    async with asqlite.connect(path.absolute().as_posix()) as conn:
        await init_schema(conn)
    app.state.db_pool = await asqlite.create_pool(path.absolute().as_posix(), size=size)
    # Only the connections created up front get the PRAGMAs here.
    for _ in range(size):
        async with app.state.db_pool.acquire() as conn:
            for pragma in PRAGMAS:
                _ = await conn.execute(pragma)
            await conn.commit()
    logger.info("Database pool ready at %s (size=%d)", path, size)


async def close_pool(app: FastAPI):
    pool: asqlite.Pool | None = getattr(app.state, "db_pool", None)
    if pool:
        await pool.close()


def _is_lock_error(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return "locked" in message or "busy" in message


async def begin(conn: DB, immediate: bool = True) -> None:
    """
    Open a transaction, retrying with exponential backoff while another writer
    holds the lock. Raises TransactionConflictError once retries are exhausted.
    """
    statement = "BEGIN IMMEDIATE;" if immediate else "BEGIN;"
    retries = _retries()
    delay = _backoff()
    for attempt in range(retries + 1):
        try:
            _ = await conn.execute(statement)
            return
        except sqlite3.OperationalError as exc:
            if not _is_lock_error(exc):
                raise
            if attempt == retries:
                logger.warning("Write lock still busy after %d retries", retries)
                raise TransactionConflictError(
                    "The ledger is busy, please try again"
                ) from exc
            logger.debug("Write lock busy, retry %d in %.3fs", attempt + 1, delay)
            await asyncio.sleep(delay)
            delay *= 2


@asynccontextmanager
async def transaction(conn: DB, immediate: bool = True) -> AsyncIterator[DB]:
    await begin(conn, immediate)
    try:
        yield conn
    except BaseException:
        _ = await conn.execute("ROLLBACK;")
        raise
    else:
        _ = await conn.execute("COMMIT;")


async def get_conn(request: Request):
    pool: asqlite.Pool = request.state.parent.state.db_pool  # pyright: ignore[reportAny]
    async with pool.acquire() as conn:
        yield conn


async def get_tx_conn(request: Request):
    pool: asqlite.Pool = request.state.parent.state.db_pool  # pyright: ignore[reportAny]
    async with pool.acquire() as conn:
        async with transaction(conn) as tx_conn:
            yield tx_conn
