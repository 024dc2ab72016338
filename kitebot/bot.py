# kitebot/bot.py
from sqlalchemy.ext.asyncio import async_sessionmaker
from telegram import Update
from telegram.ext import Application, CommandHandler, MessageHandler, TypeHandler, filters

from kitebot.services import telegram_handler as h
from kitebot.services.llm import GeminiClient
from kitebot.services.mf_cache import InstrumentCache
from kitebot.settings import Settings

COMMANDS = [
    # account
    ("start", h.start),
    ("help", h.help_command),
    ("login", h.login),
    ("logout", h.logout),
    # portfolio
    (["holdings", "portfolio"], h.holdings),
    ("positions", h.positions),
    (["balance", "funds", "account"], h.balance),
    # orders
    (["buy", "sell"], h.place_order),
    ("orders", h.list_orders),
    ("orderstatus", h.order_status),
    # mutual funds
    (["mfholdings", "mutualfunds"], h.mf_holdings),
    ("mforders", h.mf_orders),
    ("mforder", h.mf_order),
    ("mfsips", h.mf_sips),
    ("mfinstruments", h.mf_instruments),
    # AI
    (["analyze", "aiportfolio"], h.analyze),
]


def build_application(
    cfg: Settings,
    db: async_sessionmaker,
    gemini: GeminiClient,
    mf_cache: InstrumentCache,
) -> Application:
    """Telegram application with every command registered behind the auth gate."""
    application = Application.builder().token(cfg.telegram_bot_token).build()
    application.bot_data.update(db=db, settings=cfg, gemini=gemini, mf_cache=mf_cache)

    # group -1 runs before the command handlers in group 0
    application.add_handler(TypeHandler(Update, h.auth_gate), group=-1)
    for names, callback in COMMANDS:
        application.add_handler(CommandHandler(names, callback))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, h.handle_text))
    application.add_error_handler(h.on_error)
    return application
