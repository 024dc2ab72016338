"""
AI credit ledger.

Every Telegram user starts with DEFAULT_AI_CREDITS. Reading the balance
creates the row, so callers never provision users separately.
"""

from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kitebot.models import DEFAULT_AI_CREDITS, AiCredit
from kitebot.services.session_store import now_ms

# Show the remaining balance after a query once it drops to this
LOW_CREDIT_THRESHOLD = 3


@dataclass(frozen=True)
class CreditInfo:
    credits: int
    total_used: int


async def _ensure_row(s: AsyncSession, user_id: str) -> None:
    now = now_ms()
    await s.execute(
        insert(AiCredit)
        .values(
            telegram_user_id=user_id,
            credits=DEFAULT_AI_CREDITS,
            total_used=0,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=[AiCredit.telegram_user_id])
    )


async def _read(s: AsyncSession, user_id: str) -> CreditInfo:
    row = (
        await s.execute(
            select(AiCredit.credits, AiCredit.total_used).where(AiCredit.telegram_user_id == user_id)
        )
    ).one()
    return CreditInfo(credits=row.credits, total_used=row.total_used)


async def get_credits(db: async_sessionmaker, user_id) -> CreditInfo:
    """Get-or-create the credit row for a user and return its balance."""
    uid = str(user_id)
    async with db() as s:
        await _ensure_row(s, uid)
        await s.commit()
        return await _read(s, uid)


async def consume_credit(db: async_sessionmaker, user_id) -> bool:
    """
    Spend one credit. Returns False (balance unchanged) when none are left.

    The decrement is a single conditional UPDATE so the balance can never go
    below zero, even with two requests racing for the last credit.
    """
    uid = str(user_id)
    async with db() as s:
        await _ensure_row(s, uid)
        result = await s.execute(
            update(AiCredit)
            .where(AiCredit.telegram_user_id == uid, AiCredit.credits > 0)
            .values(
                credits=AiCredit.credits - 1,
                total_used=AiCredit.total_used + 1,
                updated_at=now_ms(),
            )
        )
        await s.commit()
    return result.rowcount == 1


async def add_credits(db: async_sessionmaker, user_id, amount: int) -> CreditInfo:
    """Top up a user's balance by a positive amount."""
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValueError("amount must be a positive integer")

    uid = str(user_id)
    async with db() as s:
        await _ensure_row(s, uid)
        await s.execute(
            update(AiCredit)
            .where(AiCredit.telegram_user_id == uid)
            .values(credits=AiCredit.credits + amount, updated_at=now_ms())
        )
        await s.commit()
        return await _read(s, uid)
