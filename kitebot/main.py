# kitebot/main.py
from contextlib import asynccontextmanager
from html import escape
import logging

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from kitebot.bot import build_application
from kitebot.db import close_db_connection, connect_to_db, ping_db
from kitebot.services.llm import get_gemini_client
from kitebot.services.mf_cache import mf_cache
from kitebot.settings import settings

VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def configure_logging(level: str = settings.log_level) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # python-telegram-bot logs every getUpdates poll through httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)


class HealthResponse(BaseModel):
    status: str
    env: str
    version: str
    db_connected: bool


# ---------------- lifespan ----------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.require_startup_values()
    app.state.db = await connect_to_db()

    application = build_application(settings, app.state.db, get_gemini_client(), mf_cache)
    app.state.telegram = application
    await application.initialize()
    await application.start()
    await application.updater.start_polling()
    logger.info("🚀 Kite Telegram Bot is running")

    try:
        yield
    finally:
        await application.updater.stop()
        await application.stop()
        await application.shutdown()
        await close_db_connection()


app = FastAPI(
    title="KiteBot",
    version=VERSION,
    lifespan=lifespan,
)


# ---------------- health & root ----------------

@app.get("/healthz", response_model=HealthResponse)
async def healthz(request: Request):
    db = getattr(request.app.state, "db", None)
    try:
        db_ok = db is not None and await ping_db(db)
    except Exception as e:
        logger.warning("Database health check failed: %r", e)
        db_ok = False
    return HealthResponse(
        status="ok",
        env=settings.app_env,
        version=VERSION,
        db_connected=db_ok,
    )


@app.get("/")
async def root():
    return {"message": "KiteBot is up. Talk to the bot on Telegram, or try GET /healthz"}


# ---------------- kite redirect ----------------

PAGE = """
<html>
  <body style="font-family:system-ui;padding:40px;text-align:center;background:#f0f9ff">
    <div style="max-width:500px;margin:0 auto;background:white;padding:32px;border-radius:12px">
      {body}
    </div>
  </body>
</html>
"""


@app.get("/auth/callback", response_class=HTMLResponse)
async def auth_callback(request: Request):
    """
    Redirect target configured in the Kite developer console (KITE_REDIRECT_URL).
    Shows the request_token so the user can paste it into the Telegram chat.
    """
    q = request.query_params
    request_token = q.get("request_token")

    if q.get("status") != "success" or not request_token:
        body = """
          <h2>❌ Login Failed</h2>
          <p>Please go back to Telegram and run /login to try again.</p>
        """
        return HTMLResponse(PAGE.format(body=body), status_code=400)

    body = f"""
      <h2 style="color:#10b981">✅ Zerodha login successful</h2>
      <p style="color:#374151">Send this token to the bot in Telegram:</p>
      <pre style="background:#ecfdf5;padding:16px;border-radius:8px;font-size:18px">{escape(request_token)}</pre>
      <p style="color:#9ca3af;font-size:12px">Request tokens expire within a few minutes.</p>
    """
    return HTMLResponse(PAGE.format(body=body))


def run() -> None:
    import uvicorn

    configure_logging()
    uvicorn.run("kitebot.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
