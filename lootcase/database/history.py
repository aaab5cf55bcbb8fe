import json

from cryptography.hazmat.primitives.hashes import Hash, SHA3_512

from lootcase.helper.db_helper import DB
from lootcase.schema.db import CaseTransaction, LiveFeedEntry

GENESIS_TX = "0" * 128
LIVE_FEED_MAX = 100


def _sha3_512_hex(data: str) -> str:
    h = Hash(SHA3_512())
    h.update(data.encode())
    return h.finalize().hex()


def chain_hash(prev_tx: str, transact_data: str) -> str:
    return _sha3_512_hex(f"{prev_tx}::{_sha3_512_hex(transact_data)}")


async def record_case_transaction(
    conn: DB,
    user_id: str,
    case_id: str,
    items_won: list[dict],
    total_value: int,
    transaction_type: str = "open",
) -> tuple[int, str]:
    """
    Append one audit record and link it into the hash chain.
    Returns (id, tx).
    """
    transact_data = json.dumps(
        {
            "user_id": user_id,
            "case_id": case_id,
            "transaction_type": transaction_type,
            "items_won": items_won,
            "total_value": total_value,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    last_row = await (
        await conn.execute("SELECT tx FROM case_transactions ORDER BY id DESC LIMIT 1")
    ).fetchone()
    prev_tx: str = last_row[0] if last_row else GENESIS_TX
    tx = chain_hash(prev_tx, transact_data)
    row = await (
        await conn.execute(
            """
            INSERT INTO case_transactions(
                user_id, case_id, transaction_type, items_won, total_value, transact_data, tx
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                user_id,
                case_id,
                transaction_type,
                json.dumps(items_won),
                total_value,
                transact_data,
                tx,
            ),
        )
    ).fetchone()
    return int(row[0]), tx


async def verify_chain(conn: DB) -> bool:
    prev_tx = GENESIS_TX
    cur = await conn.execute("SELECT transact_data, tx FROM case_transactions ORDER BY id ASC")
    for transact_data, tx in await cur.fetchall():
        if chain_hash(prev_tx, transact_data) != tx:
            return False
        prev_tx = tx
    return True


async def record_opening_history(conn: DB, user_id: str, case_id: str, coins_spent: int) -> None:
    _ = await conn.execute(
        "INSERT INTO case_opening_history(user_id, case_id, coins_spent) VALUES (?, ?, ?)",
        (user_id, case_id, coins_spent),
    )


async def record_live_feed(
    conn: DB,
    user_id: str,
    username: str,
    case_name: str,
    item_name: str,
    item_rarity: str,
    item_value: int,
) -> None:
    _ = await conn.execute(
        """
        INSERT INTO live_feed(user_id, username, case_name, item_name, item_rarity, item_value)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (user_id, username, case_name, item_name, item_rarity, item_value),
    )


async def list_case_transactions(conn: DB, user_id: str, limit: int = 50) -> list[CaseTransaction]:
    cur = await conn.execute(
        """
        SELECT
            t.id,
            t.user_id,
            t.case_id,
            t.transaction_type,
            t.items_won,
            t.total_value,
            t.tx,
            t.created_at,
            c.name
        FROM case_transactions t
        LEFT JOIN cases c ON c.id = t.case_id
        WHERE t.user_id = ?
        ORDER BY t.id DESC
        LIMIT ?
        """,
        (user_id, limit),
    )
    return [
        CaseTransaction(
            id=int(tid),
            user_id=str(owner),
            case_id=str(case_id),
            transaction_type=str(transaction_type),
            items_won=json.loads(items_won),
            total_value=int(total_value),
            tx=str(tx),
            created_at=str(created_at),
            case_name=case_name,
        )
        for tid, owner, case_id, transaction_type, items_won, total_value, tx, created_at, case_name in await cur.fetchall()
    ]


async def list_live_feed(conn: DB, limit: int = 20) -> list[LiveFeedEntry]:
    limit = max(1, min(int(limit), LIVE_FEED_MAX))
    cur = await conn.execute(
        """
        SELECT id, user_id, username, case_name, item_name, item_rarity, item_value, created_at
        FROM live_feed
        ORDER BY id DESC
        LIMIT ?
        """,
        (limit,),
    )
    return [
        LiveFeedEntry(
            id=int(row[0]),
            user_id=str(row[1]),
            username=str(row[2]),
            case_name=str(row[3]),
            item_name=str(row[4]),
            item_rarity=str(row[5]),
            item_value=int(row[6]),
            created_at=str(row[7]),
        )
        for row in await cur.fetchall()
    ]
