# kitebot/services/telegram_handler.py
"""
Telegram command handlers.

Shared objects live in `context.bot_data` (set up in kitebot/bot.py):
    db        - async_sessionmaker for sessions / ai_credits
    settings  - Settings
    gemini    - GeminiClient
    mf_cache  - InstrumentCache

The auth gate runs before every handler and leaves the caller's stored
session and a ready KiteClient (or None) in `context.user_data`.
"""

import functools
import logging

from telegram import LinkPreviewOptions, Update
from telegram.constants import ParseMode
from telegram.ext import ContextTypes

from kitebot.services import formatters as fmt
from kitebot.services.analyzer import analyze_portfolio, ask_portfolio_question, is_custom_question
from kitebot.services.credits import LOW_CREDIT_THRESHOLD, consume_credit, get_credits
from kitebot.services.kite_client import KiteAPIError, build_kite_client
from kitebot.services.llm import AIError
from kitebot.services.orders import OrderParseError, parse_order_command
from kitebot.services.session_store import delete_session, get_session, save_session

logger = logging.getLogger(__name__)

REQUEST_TOKEN_LENGTH = 32

NOT_LOGGED_IN = "⚠️ You are not logged in.\nPlease run /login to connect your Kite account."


async def _reply(update: Update, text: str, markdown: bool = False):
    return await update.effective_message.reply_text(
        text,
        parse_mode=ParseMode.MARKDOWN if markdown else None,
        link_preview_options=LinkPreviewOptions(is_disabled=True),
    )


def _kite(context: ContextTypes.DEFAULT_TYPE):
    return context.user_data.get("kite")


# ---------------- auth gate ----------------

async def auth_gate(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Load the caller's session and build their Kite client (group -1, runs first)."""
    user = update.effective_user
    if user is None:
        return

    session = await get_session(context.bot_data["db"], user.id)
    context.user_data["session"] = session
    if session and session.access_token:
        context.user_data["kite"] = build_kite_client(session.access_token, context.bot_data["settings"])
    else:
        context.user_data["kite"] = None


def require_auth(handler):
    @functools.wraps(handler)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not _kite(context):
            await _reply(update, NOT_LOGGED_IN)
            return None
        return await handler(update, context)

    return wrapper


# ---------------- account ----------------

async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _reply(update, fmt.WELCOME_MESSAGE, markdown=True)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _reply(update, fmt.HELP_MESSAGE, markdown=True)


async def login(update: Update, context: ContextTypes.DEFAULT_TYPE):
    client = build_kite_client(None, context.bot_data["settings"])
    await _reply(update, fmt.login_message(client.login_url()), markdown=True)


async def logout(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await delete_session(context.bot_data["db"], update.effective_user.id)
    context.user_data["session"] = None
    context.user_data["kite"] = None
    await _reply(update, "👋 You have been logged out.")


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Plain text from a logged-out user that looks like a request_token completes the login."""
    text = (update.effective_message.text or "").strip()
    if len(text) != REQUEST_TOKEN_LENGTH or _kite(context):
        return

    await _reply(update, "🔄 Verifying token...")
    client = build_kite_client(None, context.bot_data["settings"])
    try:
        data = await client.generate_session(text)
    except KiteAPIError as e:
        logger.warning("Login failed for %s: %s", update.effective_user.id, e)
        await _reply(
            update,
            f"❌ Login Failed\n\nError: {e.message}\n\n"
            "The token might be expired or invalid. Please run /login again.",
        )
        return

    await save_session(context.bot_data["db"], update.effective_user.id, data)
    context.user_data["kite"] = client
    logger.info("User %s logged in as %s", update.effective_user.id, data.get("user_id"))
    await _reply(
        update,
        f"✅ *Login Successful!*\n\nWelcome back, {data.get('user_name')}.\n"
        "You can now use /portfolio, /orders, etc.",
        markdown=True,
    )


# ---------------- portfolio ----------------

@require_auth
async def holdings(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _reply(update, "Fetching holdings...")
    try:
        data = await _kite(context).get_holdings()
    except KiteAPIError as e:
        await _reply(update, f"❌ Error fetching holdings: {e.message}")
        return
    if not data:
        await _reply(update, "You have no holdings currently.")
        return
    await _reply(update, fmt.format_holdings(data), markdown=True)


@require_auth
async def positions(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _reply(update, "Fetching positions...")
    try:
        data = await _kite(context).get_positions()
    except KiteAPIError as e:
        await _reply(update, f"❌ Error fetching positions: {e.message}")
        return
    net = (data or {}).get("net") or []
    if not net:
        await _reply(update, "No open positions.")
        return
    await _reply(update, fmt.format_positions(net), markdown=True)


@require_auth
async def balance(update: Update, context: ContextTypes.DEFAULT_TYPE):
    try:
        margins = await _kite(context).get_margins()
    except KiteAPIError as e:
        await _reply(update, f"❌ Error fetching balance: {e.message}")
        return
    await _reply(update, fmt.format_balance(margins or {}), markdown=True)


# ---------------- orders ----------------

@require_auth
async def place_order(update: Update, context: ContextTypes.DEFAULT_TYPE):
    try:
        params = parse_order_command(update.effective_message.text or "")
    except OrderParseError as e:
        await _reply(update, f"❌ Order Failed: {e}")
        return
    if not params:
        await _reply(update, "⚠️ Usage: /buy <SYMBOL> <QTY> [MARKET/LIMIT] [PRICE] [CNC/MIS]")
        return

    await _reply(
        update,
        f"⏳ Placing {params['transaction_type']} order for {params['quantity']} {params['tradingsymbol']}...",
    )
    try:
        result = await _kite(context).place_order({
            "variety": "regular",
            "exchange": params["exchange"],
            "tradingsymbol": params["tradingsymbol"],
            "transaction_type": params["transaction_type"],
            "quantity": params["quantity"],
            "product": params["product"],
            "order_type": params["order_type"],
            "price": params["price"],
            "validity": params["validity"],
        })
    except KiteAPIError as e:
        await _reply(update, f"❌ Order Failed: {e.message}")
        return
    await _reply(update, f"✅ Order Placed!\nOrder ID: `{result['order_id']}`", markdown=True)


@require_auth
async def list_orders(update: Update, context: ContextTypes.DEFAULT_TYPE):
    try:
        orders = await _kite(context).get_orders()
    except KiteAPIError as e:
        await _reply(update, f"❌ Error fetching orders: {e.message}")
        return
    if not orders:
        await _reply(update, "No orders found for today.")
        return
    await _reply(update, fmt.format_orders(orders), markdown=True)


@require_auth
async def order_status(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not context.args:
        await _reply(update, "⚠️ Usage: /orderstatus <order_id>")
        return
    try:
        history = await _kite(context).get_order_history(context.args[0])
    except KiteAPIError as e:
        await _reply(update, f"❌ Error fetching status: {e.message}")
        return
    if not history:
        await _reply(update, "Order not found.")
        return
    # history is a list of state changes; the last one is current
    await _reply(update, fmt.format_order_status(history[-1]), markdown=True)


# ---------------- mutual funds ----------------

@require_auth
async def mf_holdings(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _reply(update, "📊 Fetching mutual fund holdings...")
    try:
        data = await _kite(context).get_mf_holdings()
    except KiteAPIError as e:
        await _reply(update, f"❌ Error fetching MF holdings: {e.message}")
        return
    if not data:
        await _reply(update, "📭 You have no mutual fund holdings currently.")
        return
    await _reply(update, fmt.format_mf_holdings(data), markdown=True)


@require_auth
async def mf_orders(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _reply(update, "📋 Fetching mutual fund orders...")
    try:
        orders = await _kite(context).get_mf_orders()
    except KiteAPIError as e:
        await _reply(update, f"❌ Error fetching MF orders: {e.message}")
        return
    if not orders:
        await _reply(update, "📭 No mutual fund orders found in the last 7 days.")
        return
    await _reply(update, fmt.format_mf_orders(orders), markdown=True)


@require_auth
async def mf_order(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not context.args:
        await _reply(
            update,
            "⚠️ Usage: /mforder <order_id>\n\nExample: /mforder 271989e0-a64e-4cf3-b4e4-afb8f38dd203",
        )
        return
    await _reply(update, "🔍 Fetching order details...")
    try:
        order = await _kite(context).get_mf_order(context.args[0])
    except KiteAPIError as e:
        await _reply(update, f"❌ Error fetching order details: {e.message}")
        return
    if not order:
        await _reply(update, "❌ Order not found.")
        return
    await _reply(update, fmt.format_mf_order(order), markdown=True)


@require_auth
async def mf_sips(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _reply(update, "📘 Fetching SIP orders...")
    try:
        sips = await _kite(context).get_mf_sips()
    except KiteAPIError as e:
        await _reply(update, f"❌ Error fetching SIPs: {e.message}")
        return
    if not sips:
        await _reply(update, "📭 No active SIPs found.")
        return
    await _reply(update, fmt.format_mf_sips(sips), markdown=True)


@require_auth
async def mf_instruments(update: Update, context: ContextTypes.DEFAULT_TYPE):
    term = " ".join(context.args or []).strip()
    if not term:
        await _reply(update, fmt.MF_SEARCH_USAGE, markdown=True)
        return

    cache = context.bot_data["mf_cache"]
    await _reply(update, "🔍 Searching mutual funds...")
    try:
        results = await cache.search(_kite(context).get_mf_instruments, term, 10)
    except KiteAPIError as e:
        await _reply(update, f"❌ Error searching instruments: {e.message}")
        return
    if not results:
        await _reply(update, f'📭 No mutual funds found matching "{term}".')
        return
    await _reply(update, fmt.format_mf_search(term, results, cache.stats().instrument_count), markdown=True)


# ---------------- AI analysis ----------------

async def _send_low_credit_notice(update: Update, db, user_id) -> None:
    remaining = await get_credits(db, user_id)
    if remaining.credits <= LOW_CREDIT_THRESHOLD:
        await _reply(update, f"🎫 {remaining.credits} AI credits remaining")


@require_auth
async def analyze(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """
    /analyze [help | credits | detailed | full | <question>]

    A credit is spent only after Gemini has answered; failures cost nothing.
    """
    db = context.bot_data["db"]
    gemini = context.bot_data["gemini"]
    user_id = update.effective_user.id

    if not gemini.enabled:
        await _reply(
            update,
            "❌ *AI Analysis Unavailable*\n\n"
            "The Gemini API key is not configured. "
            "Please add `GEMINI_API_KEY` to your environment variables.",
            markdown=True,
        )
        return

    args_text = " ".join(context.args or []).strip()
    mode = args_text.lower()

    if mode == "help":
        await _reply(update, fmt.ANALYZE_HELP, markdown=True)
        return
    if mode == "credits":
        await _reply(update, fmt.format_credits(await get_credits(db, user_id)), markdown=True)
        return

    info = await get_credits(db, user_id)
    if info.credits <= 0:
        await _reply(update, fmt.format_no_credits(info), markdown=True)
        return

    kite = _kite(context)
    try:
        if is_custom_question(args_text):
            await _reply(update, "🤖 Thinking about your question...")
            answer = await ask_portfolio_question(kite, gemini, args_text)
            if answer.is_empty:
                await _reply(
                    update,
                    "📭 *No Holdings Found*\n\nAdd some investments first to ask questions about your portfolio.",
                    markdown=True,
                )
                return
            await consume_credit(db, user_id)
            # plain text: model output can break Markdown parsing
            await _reply(update, f"💬 Your Question: {args_text}\n\n{answer.answer}")
        else:
            detailed = mode in ("detailed", "full")
            await _reply(update, "🤖 Analyzing your portfolio with AI...")
            result = await analyze_portfolio(kite, gemini, "detailed" if detailed else "brief")
            if result.is_empty:
                await _reply(
                    update,
                    "📭 *No Holdings Found*\n\n"
                    "Add some equity or mutual fund investments to get AI-powered analysis.",
                    markdown=True,
                )
                return
            await consume_credit(db, user_id)
            if detailed:
                for message in fmt.format_detailed_analysis(result):
                    await _reply(update, message, markdown=True)
            else:
                await _reply(update, fmt.format_brief_analysis(result), markdown=True)
    except (AIError, KiteAPIError) as e:
        logger.error("AI analysis error for %s: %s", user_id, e)
        await _reply(update, f"❌ Analysis Failed\n\n{e}")
        return

    await _send_low_credit_notice(update, db, user_id)


# ---------------- errors ----------------

async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Unhandled error while processing update", exc_info=context.error)
    if isinstance(update, Update) and update.effective_message:
        await update.effective_message.reply_text("⚠️ An unexpected error occurred. Please try again later.")
