import uuid

from lootcase.helper.db_helper import DB
from lootcase.schema.db import Profile


class ProfileNotFoundError(ValueError): ...


class InsufficientBalanceError(ValueError): ...


class BalanceConflictError(ValueError): ...


async def create_profile(
    conn: DB,
    username: str,
    *,
    display_name: str | None = None,
    balance: int = 0,
    profile_id: str | None = None,
) -> Profile:
    if balance < 0:
        raise ValueError("balance must be >= 0")
    profile_id = profile_id or str(uuid.uuid4())
    _ = await conn.execute(
        "INSERT INTO profiles(id, username, display_name, uc_balance) VALUES (?, ?, ?, ?)",
        (profile_id, username, display_name, str(balance)),
    )
    return Profile(profile_id, username, display_name, str(balance))


async def get_profile(conn: DB, user_id: str) -> Profile:
    row = await (
        await conn.execute(
            "SELECT id, username, display_name, uc_balance FROM profiles WHERE id = ?",
            (user_id,),
        )
    ).fetchone()
    if row is None:
        raise ProfileNotFoundError("Profile not found")
    return Profile(
        id=str(row[0]), username=str(row[1]), display_name=row[2], uc_balance=str(row[3])
    )


async def get_balance(conn: DB, user_id: str) -> int:
    return int((await get_profile(conn, user_id)).uc_balance)


async def get_display_name(conn: DB, user_id: str) -> str:
    profile = await get_profile(conn, user_id)
    return profile.display_name or profile.username or "Anonymous"


async def apply_balance_delta(
    conn: DB, user_id: str, delta: int, *, expected: int | None = None
) -> int:
    """
    Add ``delta`` (possibly negative) to the balance in one conditional write.

    The update only lands if the stored balance still equals the value it was
    computed from; otherwise BalanceConflictError is raised. The result may never
    go below zero.
    """
    current = expected if expected is not None else await get_balance(conn, user_id)
    new_balance = current + delta
    if new_balance < 0:
        raise InsufficientBalanceError("Insufficient coins")
    row = await (
        await conn.execute(
            "UPDATE profiles SET uc_balance = ? WHERE id = ? AND uc_balance = ? RETURNING uc_balance",
            (str(new_balance), user_id, str(current)),
        )
    ).fetchone()
    if row is None:
        raise BalanceConflictError("Balance changed during the update, please try again")
    return int(row[0])
