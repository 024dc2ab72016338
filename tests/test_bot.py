from telegram.ext import CommandHandler, MessageHandler, TypeHandler

from kitebot.bot import build_application
from kitebot.services.mf_cache import InstrumentCache
from kitebot.settings import Settings


def test_build_application_registers_handlers():
    cfg = Settings(_env_file=None, telegram_bot_token="123456:TEST-TOKEN")
    db, gemini, cache = object(), object(), InstrumentCache()

    app = build_application(cfg, db, gemini, cache)

    assert app.bot_data["db"] is db
    assert app.bot_data["mf_cache"] is cache
    assert app.bot_data["settings"] is cfg
    assert isinstance(app.handlers[-1][0], TypeHandler)

    commands = set()
    for handler in app.handlers[0]:
        if isinstance(handler, CommandHandler):
            commands |= handler.commands
    assert {"start", "login", "logout", "portfolio", "holdings", "buy", "sell", "orderstatus",
            "mfholdings", "mforder", "mfsips", "mfinstruments", "analyze", "aiportfolio"} <= commands
    assert any(isinstance(hd, MessageHandler) for hd in app.handlers[0])
    assert app.error_handlers
