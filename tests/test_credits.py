"""
Unit tests for the AI credit ledger.
"""

import pytest
from sqlalchemy import func, select

from kitebot.models import DEFAULT_AI_CREDITS, AiCredit
from kitebot.services.credits import CreditInfo, add_credits, consume_credit, get_credits


class TestGetCredits:
    """Reading the balance creates the row."""

    async def test_new_user_gets_default(self, db):
        info = await get_credits(db, 100)
        assert info == CreditInfo(credits=DEFAULT_AI_CREDITS, total_used=0)

    async def test_row_is_persisted_on_first_read(self, db):
        await get_credits(db, 100)
        async with db() as s:
            row = await s.get(AiCredit, "100")
        assert row.credits == DEFAULT_AI_CREDITS
        assert row.total_used == 0
        assert row.created_at is not None
        assert row.updated_at == row.created_at

    async def test_second_read_does_not_reinitialize(self, db):
        await get_credits(db, 100)
        await consume_credit(db, 100)

        info = await get_credits(db, 100)
        async with db() as s:
            count = await s.scalar(select(func.count()).select_from(AiCredit))
        assert info == CreditInfo(credits=DEFAULT_AI_CREDITS - 1, total_used=1)
        assert count == 1


class TestConsumeCredit:
    """Balance never goes negative."""

    async def test_consume_without_prior_read(self, db):
        assert await consume_credit(db, 5) is True
        assert await get_credits(db, 5) == CreditInfo(credits=DEFAULT_AI_CREDITS - 1, total_used=1)

    async def test_default_plus_one_consumptions(self, db):
        results = [await consume_credit(db, 5) for _ in range(DEFAULT_AI_CREDITS + 1)]

        assert results.count(True) == DEFAULT_AI_CREDITS
        assert results[-1] is False
        assert await get_credits(db, 5) == CreditInfo(credits=0, total_used=DEFAULT_AI_CREDITS)

    async def test_failed_consume_leaves_balance_unchanged(self, db):
        for _ in range(DEFAULT_AI_CREDITS):
            await consume_credit(db, 5)

        assert await consume_credit(db, 5) is False
        assert await consume_credit(db, 5) is False
        assert await get_credits(db, 5) == CreditInfo(credits=0, total_used=DEFAULT_AI_CREDITS)

    async def test_users_are_independent(self, db):
        await consume_credit(db, 1)
        assert (await get_credits(db, 2)).credits == DEFAULT_AI_CREDITS


class TestAddCredits:
    """Additive top-up."""

    async def test_add_to_new_user(self, db):
        info = await add_credits(db, 9, 5)
        assert info == CreditInfo(credits=DEFAULT_AI_CREDITS + 5, total_used=0)

    async def test_add_after_exhausting(self, db):
        for _ in range(DEFAULT_AI_CREDITS):
            await consume_credit(db, 9)

        info = await add_credits(db, 9, 2)
        assert info == CreditInfo(credits=2, total_used=DEFAULT_AI_CREDITS)
        assert await consume_credit(db, 9) is True

    @pytest.mark.parametrize("amount", [0, -3, 1.5, True])
    async def test_rejects_non_positive_or_non_int(self, db, amount):
        with pytest.raises(ValueError, match="positive integer"):
            await add_credits(db, 9, amount)
