"""
Persistence of user records and their 2FA fields.

Every function opens its own session. Mutations of the 2FA fields are single
UPDATE statements; the ones that consume something (legacy code, HOTP counter)
carry the expected old value in the WHERE clause and report whether a row was
actually changed, so two concurrent requests cannot both win.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from common.clock import utcnow
from common.log_handler import log
from database.models import get_session, Users
from twofactor.errors import PersistenceFailure


async def get_user_by_id(user_id: int) -> Optional[Users]:
    try:
        async with get_session() as session:
            result = await session.execute(select(Users).where(Users.id == user_id))
            return result.scalars().first()
    except SQLAlchemyError as e:
        log.error(f"Loading user {user_id} failed: {e}")
        raise PersistenceFailure("Could not load user") from e


async def get_user_by_username(username: str) -> Optional[Users]:
    try:
        async with get_session() as session:
            result = await session.execute(select(Users).where(Users.username == username))
            return result.scalars().first()
    except SQLAlchemyError as e:
        log.error(f"Loading user '{username}' failed: {e}")
        raise PersistenceFailure("Could not load user") from e


async def username_or_email_taken(username: str, email: str) -> bool:
    async with get_session() as session:
        result = await session.execute(
            select(Users.id).where((Users.username == username) | (Users.email == email))
        )
        return result.first() is not None


async def create_user(username: str, email: str, password_hash: str, roles: List[str]) -> Users:
    """
    Insert a new user with 2FA disabled.

    Raises:
        ValueError: If username or email already exist
        PersistenceFailure: On any other database error
    """
    user = Users(
        username=username,
        email=email,
        password_hash=password_hash,
        roles=list(roles),
        is_active=True,
        two_factor_enabled=False,
        hotp_counter=0,
        legacy_code_used=False,
    )
    try:
        async with get_session() as session:
            session.add(user)
            await session.commit()
    except IntegrityError as e:
        raise ValueError("Username or email already exists") from e
    except SQLAlchemyError as e:
        log.error(f"Creating user '{username}' failed: {e}")
        raise PersistenceFailure("Could not create user") from e
    return user


async def _execute_update(statement, action: str) -> int:
    try:
        async with get_session() as session:
            result = await session.execute(statement.execution_options(synchronize_session=False))
            await session.commit()
            return result.rowcount
    except SQLAlchemyError as e:
        log.error(f"Database update failed while trying to {action}: {e}")
        raise PersistenceFailure(f"Could not {action}") from e


async def store_secret(user_id: int, secret: str, method: str) -> bool:
    """Store a freshly provisioned secret and restart the HOTP counter."""
    changed = await _execute_update(
        update(Users).where(Users.id == user_id).values(
            two_factor_secret=secret,
            two_factor_method=method,
            hotp_counter=0,
        ),
        "store 2FA secret",
    )
    return changed == 1


async def store_legacy_code(user_id: int, code: str, expiry: datetime) -> bool:
    # overwriting a pending code retires it
    changed = await _execute_update(
        update(Users).where(Users.id == user_id).values(
            legacy_code=code,
            legacy_code_expiry=expiry,
            legacy_code_used=False,
        ),
        "store 2FA code",
    )
    return changed == 1


async def consume_legacy_code(user_id: int, code: str, now: datetime) -> bool:
    """
    Mark a legacy code as used if, at this very moment, it is still the
    pending, unexpired code of the user.

    Returns:
        True for exactly one caller per issued code
    """
    changed = await _execute_update(
        update(Users).where(
            (Users.id == user_id)
            & (Users.legacy_code == code)
            & (Users.legacy_code_used == False)
            & (Users.legacy_code_expiry >= now)
        ).values(legacy_code_used=True),
        "consume 2FA code",
    )
    return changed == 1


async def advance_hotp_counter(user_id: int, expected: int, new_counter: int) -> bool:
    changed = await _execute_update(
        update(Users).where(
            (Users.id == user_id) & (Users.hotp_counter == expected)
        ).values(hotp_counter=new_counter),
        "advance HOTP counter",
    )
    return changed == 1


async def set_two_factor_enabled(user_id: int, enabled: bool) -> bool:
    changed = await _execute_update(
        update(Users).where(Users.id == user_id).values(two_factor_enabled=enabled),
        "update 2FA flag",
    )
    return changed == 1


async def clear_two_factor(user_id: int) -> bool:
    """Disable 2FA and wipe every piece of 2FA state in one statement."""
    changed = await _execute_update(
        update(Users).where(Users.id == user_id).values(
            two_factor_enabled=False,
            two_factor_secret=None,
            two_factor_method=None,
            hotp_counter=0,
            legacy_code=None,
            legacy_code_expiry=None,
            legacy_code_used=False,
        ),
        "disable 2FA",
    )
    return changed == 1


async def update_last_login(user_id: int) -> None:
    await _execute_update(
        update(Users).where(Users.id == user_id).values(last_login=utcnow()),
        "update last login",
    )
