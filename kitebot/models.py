# kitebot/models.py
"""
SQLAlchemy models for the two persisted tables.

- sessions:   one Kite login per Telegram user (upserted on login, deleted on logout)
- ai_credits: AI analysis credit balance per Telegram user

Timestamps are epoch milliseconds, matching what the Kite login flow hands us.
"""

from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

DEFAULT_AI_CREDITS = 10


class Base(DeclarativeBase):
    pass


class UserSession(Base):
    __tablename__ = "sessions"

    telegram_user_id: Mapped[str] = mapped_column(String, primary_key=True)
    request_token: Mapped[str | None] = mapped_column(String, nullable=True)
    access_token: Mapped[str | None] = mapped_column(String, nullable=True)
    public_token: Mapped[str | None] = mapped_column(String, nullable=True)
    kite_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    user_name: Mapped[str | None] = mapped_column(String, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
    login_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    expires_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    def __repr__(self):
        return f"<UserSession(telegram_user_id='{self.telegram_user_id}', kite_user_id='{self.kite_user_id}')>"


class AiCredit(Base):
    __tablename__ = "ai_credits"

    telegram_user_id: Mapped[str] = mapped_column(String, primary_key=True)
    credits: Mapped[int] = mapped_column(Integer, default=DEFAULT_AI_CREDITS, nullable=False)
    total_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    updated_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
