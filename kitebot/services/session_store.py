"""
Session store: one Kite login per Telegram user.

Rows are keyed by the Telegram user id (always stored as a string) and are
overwritten in place on every successful login.
"""

import datetime as dt
import time
from zoneinfo import ZoneInfo
from typing import Any, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import async_sessionmaker

from kitebot.models import UserSession

KITE_TZ = ZoneInfo("Asia/Kolkata")


def now_ms() -> int:
    return int(time.time() * 1000)


def _login_time_ms(value: Any) -> int:
    # Kite returns login_time as a naive IST datetime, or as a string it could not parse
    if isinstance(value, str):
        try:
            value = dt.datetime.fromisoformat(value)
        except ValueError:
            return now_ms()
    if isinstance(value, dt.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=KITE_TZ)
        return int(value.timestamp() * 1000)
    if value:
        return int(value)
    return now_ms()


async def save_session(db: async_sessionmaker, user_id, session_data: Dict[str, Any]) -> None:
    """
    Upsert the session for a user.

    Args:
        db: Session factory
        user_id: Telegram user id
        session_data: Fields as returned by Kite's token exchange
            (access_token, public_token, user_id, user_name, avatar_url, login_time)
    """
    values = {
        "telegram_user_id": str(user_id),
        "access_token": session_data.get("access_token"),
        "public_token": session_data.get("public_token"),
        "kite_user_id": session_data.get("user_id"),
        "user_name": session_data.get("user_name"),
        "avatar_url": session_data.get("avatar_url"),
        "login_time": _login_time_ms(session_data.get("login_time")),
    }
    stmt = insert(UserSession).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[UserSession.telegram_user_id],
        set_={k: stmt.excluded[k] for k in values if k != "telegram_user_id"},
    )
    async with db() as s:
        await s.execute(stmt)
        await s.commit()


async def get_session(db: async_sessionmaker, user_id) -> Optional[UserSession]:
    """Return the stored session, or None when the user never logged in."""
    async with db() as s:
        return await s.scalar(
            select(UserSession).where(UserSession.telegram_user_id == str(user_id))
        )


async def delete_session(db: async_sessionmaker, user_id) -> bool:
    """Remove the session if present. Returns True when a row was deleted."""
    async with db() as s:
        result = await s.execute(
            delete(UserSession).where(UserSession.telegram_user_id == str(user_id))
        )
        await s.commit()
    return result.rowcount > 0
