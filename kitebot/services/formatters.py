# kitebot/services/formatters.py
"""
Telegram message formatting (legacy Markdown parse mode).

Pure functions: Kite JSON / analysis results in, message text out.
"""
from __future__ import annotations
from typing import Any, Dict, List
import datetime as dt

from kitebot.models import DEFAULT_AI_CREDITS
from kitebot.services.analyzer import AnalysisResult
from kitebot.services.credits import CreditInfo


def format_inr(value: float | int | None) -> str:
    """₹ with Indian digit grouping, e.g. 1234567.5 -> ₹12,34,567.50"""
    value = float(value or 0)
    sign = "-" if value < 0 else ""
    whole, frac = f"{abs(value):.2f}".split(".")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    return f"{sign}₹{whole}.{frac}"


def format_date(value: Any) -> str:
    if not value:
        return "N/A"
    if isinstance(value, str):
        try:
            value = dt.datetime.fromisoformat(value)
        except ValueError:
            return value
    if isinstance(value, (dt.datetime, dt.date)):
        return value.strftime("%d %b %Y")
    return str(value)


def truncate(text: str | None, width: int) -> str:
    text = text or ""
    return text if len(text) <= width else text[: width - 3] + "..."


def pnl_emoji(value: float) -> str:
    return "🟢" if value >= 0 else "🔴"


def signed(value: float) -> str:
    return "+" if value >= 0 else ""


# ---------------- account ----------------

WELCOME_MESSAGE = """👋 *Welcome to the Kite Trading Bot!*

I can help you manage your Zerodha portfolio and place orders directly from Telegram.

*Getting Started:*
1. Run /login to link your Zerodha account.
2. Once logged in, use /holdings or /positions to view your portfolio.
3. Use /buy or /sell to place orders.
4. Use /help to see all commands."""

HELP_MESSAGE = """🤖 *Available Commands*

*Account*
/start - Welcome & Intro
/login - Connect Zerodha Kite
/logout - Disconnect account
/help - Show this menu

*Portfolio*
/portfolio - View Holdings (or /holdings)
/positions - View Net Positions
/balance - View Funds (or /funds)

*Trading*
/buy - Place Buy Order
  _Usage: /buy SYMBOL QTY [TYPE] [PRICE]_
/sell - Place Sell Order
/orders - List Recent Orders
/orderstatus <id> - Check Order Status

*Mutual Funds*
/mfholdings - View MF Holdings (or /mutualfunds)
/mforders - List MF Orders (7 days)
/mforder <id> - Check MF Order Details
/mfsips - View Active SIPs
/mfinstruments <query> - Search MF Schemes

*AI Analysis*
/analyze - AI portfolio insights (or /aiportfolio)"""


def login_message(login_url: str) -> str:
    return f"""🔐 *Kite Login*

Click the link below to login to Zerodha.
[Login with Kite Connect]({login_url})

After logging in, you will be redirected to a page showing your `request_token`.

*Copy the request_token value* and send it here to complete the login."""


# ---------------- portfolio ----------------

def format_holdings(holdings: List[Dict[str, Any]]) -> str:
    lines = ["📊 *Portfolio Holdings*", ""]
    total_pnl = 0.0
    for h in holdings:
        pnl = h.get("pnl", 0) or 0
        total_pnl += pnl
        lines.append(f"*{h.get('tradingsymbol')}*")
        lines.append(f"Qty: {h.get('quantity')} | Avg: {(h.get('average_price') or 0):.2f}")
        lines.append(f"LTP: {h.get('last_price')} | P&L: {pnl_emoji(pnl)} {format_inr(pnl)}")
        lines.append("")
    lines.append("-------------------")
    lines.append(f"*Total P&L: {pnl_emoji(total_pnl)} {format_inr(total_pnl)}*")
    return "\n".join(lines)


def format_positions(net: List[Dict[str, Any]]) -> str:
    lines = ["📉 *Net Positions*", ""]
    for p in net:
        pnl = p.get("pnl", 0) or 0
        lines.append(f"*{p.get('tradingsymbol')}* ({p.get('product')})")
        lines.append(f"Qty: {p.get('quantity')} | Avg: {(p.get('average_price') or 0):.2f}")
        lines.append(f"P&L: {pnl_emoji(pnl)} {format_inr(pnl)}")
        lines.append("")
    return "\n".join(lines).rstrip()


def format_balance(margins: Dict[str, Any]) -> str:
    lines = ["💰 *Account Balance*", ""]
    eq = margins.get("equity")
    cm = margins.get("commodity")
    if eq:
        lines.append("*Equity*")
        lines.append(f"Available Cash: {format_inr(eq.get('available', {}).get('cash'))}")
        lines.append(f"Utilized: {format_inr(eq.get('utilised', {}).get('debits'))}")
        lines.append(f"Net: {format_inr(eq.get('net'))}")
        lines.append("")
    if cm:
        lines.append("*Commodity*")
        lines.append(f"Available Cash: {format_inr(cm.get('available', {}).get('cash'))}")
        lines.append(f"Net: {format_inr(cm.get('net'))}")
    return "\n".join(lines).rstrip()


# ---------------- orders ----------------

def format_orders(orders: List[Dict[str, Any]], limit: int = 5) -> str:
    lines = ["📋 *Recent Orders*", ""]
    for o in orders[:limit]:
        lines.append(f"🆔 `{o.get('order_id')}`")
        lines.append(f"{o.get('transaction_type')} {o.get('tradingsymbol')} x {o.get('quantity')}")
        lines.append(f"Status: *{o.get('status')}* | Price: {o.get('price') or 'MKT'}")
        lines.append("")
    return "\n".join(lines).rstrip()


def format_order_status(current: Dict[str, Any]) -> str:
    lines = [
        f"🆔 *Order Status: {current.get('status')}*",
        f"Symbol: {current.get('tradingsymbol')}",
        f"Type: {current.get('transaction_type')} {current.get('order_type')}",
        f"Qty: {current.get('filled_quantity')}/{current.get('quantity')}",
    ]
    if current.get("average_price"):
        lines.append(f"Avg Price: {current['average_price']}")
    if current.get("status_message"):
        lines.append(f"Msg: {current['status_message']}")
    return "\n".join(lines)


# ---------------- mutual funds ----------------

def mf_status_emoji(status: str | None) -> str:
    return {"COMPLETE": "✅", "REJECTED": "❌", "OPEN": "🔄"}.get(status or "", "⏳")


def format_mf_holdings(holdings: List[Dict[str, Any]]) -> str:
    lines = ["📊 *Mutual Fund Holdings*", ""]
    total_invested = 0.0
    total_current = 0.0
    for h in holdings:
        units = h.get("quantity", 0) or 0
        avg = h.get("average_price", 0) or 0
        ltp = h.get("last_price", 0) or 0
        invested = avg * units
        current = ltp * units
        pnl = current - invested
        pnl_pct = pnl / invested * 100 if invested > 0 else 0
        total_invested += invested
        total_current += current

        lines.append(f"*{truncate(h.get('fund'), 35)}*")
        lines.append(f"📁 Folio: `{h.get('folio')}`")
        lines.append(f"Units: {units:.3f} | Avg NAV: ₹{avg:.2f}")
        lines.append(f"Current NAV: ₹{ltp:.2f}")
        lines.append(f"Invested: {format_inr(invested)}")
        lines.append(f"Current: {format_inr(current)}")
        lines.append(f"P&L: {pnl_emoji(pnl)} {format_inr(pnl)} ({signed(pnl)}{pnl_pct:.2f}%)")
        lines.append("")

    total_pnl = total_current - total_invested
    total_pct = total_pnl / total_invested * 100 if total_invested > 0 else 0
    lines.append("━━━━━━━━━━━━━━━━━━━━")
    lines.append("📈 *Summary*")
    lines.append(f"Total Invested: {format_inr(total_invested)}")
    lines.append(f"Current Value: {format_inr(total_current)}")
    lines.append(
        f"Total P&L: {pnl_emoji(total_pnl)} {format_inr(total_pnl)} ({signed(total_pnl)}{total_pct:.2f}%)"
    )
    return "\n".join(lines)


def format_mf_orders(orders: List[Dict[str, Any]], limit: int = 5) -> str:
    lines = ["📋 *Recent MF Orders (Last 7 Days)*", ""]
    for o in orders[:limit]:
        lines.append(f"{mf_status_emoji(o.get('status'))} *{truncate(o.get('fund'), 30)}*")
        lines.append(f"🆔 `{o.get('order_id')}`")
        lines.append(f"Type: {o.get('transaction_type')} | Amount: {format_inr(o.get('amount'))}")
        if (o.get("quantity") or 0) > 0:
            lines.append(f"Units: {o['quantity']:.3f}")
        lines.append(f"Status: *{o.get('status')}*")
        lines.append(f"Date: {format_date(o.get('order_timestamp'))}")
        lines.append("")
    if len(orders) > limit:
        lines.append(f"_Showing {limit} of {len(orders)} orders_")
    return "\n".join(lines).rstrip()


def format_mf_order(order: Dict[str, Any]) -> str:
    lines = ["📄 *MF Order Details*", ""]
    lines.append(f"{mf_status_emoji(order.get('status'))} Status: *{order.get('status')}*")
    if order.get("status_message"):
        lines.append(f"Message: {order['status_message']}")
    lines.append("")
    lines.append(f"🆔 Order ID: `{order.get('order_id')}`")
    lines.append(f"📘 Fund: *{order.get('fund')}*")
    lines.append(f"📊 Symbol: `{order.get('tradingsymbol')}`")
    lines.append("")
    lines.append(f"💰 Transaction: {order.get('transaction_type')}")
    lines.append(f"💵 Amount: {format_inr(order.get('amount'))}")
    if (order.get("quantity") or 0) > 0:
        lines.append(f"📦 Units: {order['quantity']:.3f}")
    if (order.get("average_price") or 0) > 0:
        lines.append(f"📈 Avg NAV: ₹{order['average_price']:.2f}")
    lines.append("")
    lines.append(f"📅 Order Date: {format_date(order.get('order_timestamp'))}")
    lines.append(f"🏷️ Variety: {order.get('variety') or 'N/A'}")
    if order.get("folio"):
        lines.append(f"📁 Folio: `{order['folio']}`")
    return "\n".join(lines)


def format_mf_sips(sips: List[Dict[str, Any]]) -> str:
    lines = ["📘 *SIP Orders*", ""]
    for sip in sips:
        status = sip.get("status")
        emoji = {"ACTIVE": "✅", "PAUSED": "⏸️"}.get(status or "", "⏹️")
        lines.append(f"{emoji} *{truncate(sip.get('fund'), 30)}*")
        lines.append(f"💵 Amount: {format_inr(sip.get('instalment_amount'))}")
        lines.append(f"🔄 Frequency: {(sip.get('frequency') or '').capitalize()}")
        lines.append(f"📅 Next: {format_date(sip.get('next_instalment'))}")
        lines.append(f"Status: *{status}*")
        lines.append(f"✅ Completed: {sip.get('completed_instalments')} instalments")
        pending = sip.get("pending_instalments") or 0
        if 0 < pending < 9999:
            lines.append(f"⏳ Pending: {pending} instalments")
        lines.append("")
    return "\n".join(lines).rstrip()


MF_SEARCH_USAGE = (
    "🔍 *Search Mutual Funds*\n\n"
    "Usage: /mfinstruments <search term>\n\n"
    "Examples:\n"
    "• /mfinstruments hdfc balanced\n"
    "• /mfinstruments axis bluechip\n"
    "• /mfinstruments kotak flexi\n\n"
    "_This searches fund names, AMCs, and scheme codes._"
)


def format_mf_search(term: str, results: List[Dict[str, Any]], cached_count: int) -> str:
    lines = [f'🔍 *MF Search Results for "{term}"*', ""]
    for idx, inst in enumerate(results, start=1):
        lines.append(f"*{idx}. {truncate(inst.get('name'), 40)}*")
        lines.append(f"📊 Symbol: `{inst.get('tradingsymbol')}`")
        lines.append(f"🏢 AMC: {(inst.get('amc') or '').replace('_MF', '')}")
        lines.append(f"💰 Min Purchase: {format_inr(inst.get('minimum_purchase_amount'))}")
        lines.append(f"📈 Last NAV: ₹{inst.get('last_price')}")
        lines.append(f"📋 Type: {inst.get('scheme_type')} ({inst.get('plan')})")
        lines.append("")
    lines.append(f"_Showing {len(results)} of {cached_count} cached funds_")
    return "\n".join(lines)


# ---------------- AI analysis ----------------

ANALYZE_HELP = """🤖 *AI Portfolio Analysis*

*Commands:*
• `/analyze` - Quick portfolio summary
• `/analyze detailed` - Full breakdown
• `/analyze credits` - Check your AI credits

*Ask Questions:*
• `/analyze what are my risky holdings?`
• `/analyze how is my portfolio diversified?`
• `/analyze list my top investments`
• `/analyze which sector am I overexposed to?`

⚠️ _Analysis is educational only, not investment advice._"""


def format_credits(info: CreditInfo) -> str:
    return f"""🎫 *Your AI Credits*

💳 Available: *{info.credits}* credits
📊 Total Used: {info.total_used} analyses

Each AI query uses 1 credit.
New users receive {DEFAULT_AI_CREDITS} free credits."""


def format_no_credits(info: CreditInfo) -> str:
    return (
        "🎫 *No Credits Remaining*\n\n"
        "You've used all your AI credits.\n"
        f"Total analyses done: {info.total_used}"
    )


def _summary_lines(summary: Dict[str, Any], analysis: Dict[str, Any]) -> List[str]:
    pnl = summary.get("unrealized_pnl", 0)
    pnl_pct = summary.get("unrealized_pnl_percent", 0)
    return [
        f"📈 Diversification Score: *{analysis.get('diversification_score')} / 10*",
        f"⚖️ Risk Profile: *{analysis.get('risk_profile')}*",
        "",
        f"💰 Total Value: {format_inr(summary.get('total_value'))}",
        f"📊 P&L: {pnl_emoji(pnl)} {format_inr(pnl)} ({signed(pnl_pct)}{pnl_pct}%)",
    ]


def format_brief_analysis(result: AnalysisResult) -> str:
    analysis = result.analysis
    lines = ["📊 *AI Portfolio Analysis*", ""]
    lines += _summary_lines(result.portfolio_summary, analysis)
    lines.append("")

    insights = analysis.get("key_insights") or []
    if insights:
        lines.append("*Key Observations:*")
        lines += [f"• {i}" for i in insights[:3]]
        lines.append("")

    lines.append("_Type /analyze detailed for full breakdown_")
    lines.append("_Or ask a question: /analyze what are my risky holdings?_")
    lines.append("")
    lines.append(f"⚠️ _{analysis.get('disclaimer')}_")
    return "\n".join(lines)


def format_detailed_analysis(result: AnalysisResult) -> List[str]:
    """One Telegram message per section."""
    summary = result.portfolio_summary
    analysis = result.analysis
    messages = []

    lines = ["📊 *AI Portfolio Analysis - Detailed*", ""]
    lines += _summary_lines(summary, analysis)
    lines += [
        "",
        "*Portfolio Allocation:*",
        f"• Equity: {summary.get('equity_allocation_percent')}%",
        f"• Mutual Funds: {summary.get('mutual_fund_allocation_percent')}%",
        f"• Top holding concentration: {summary.get('top_holding_concentration_percent')}%",
        f"• Top 3 concentration: {summary.get('top_3_concentration_percent')}%",
    ]
    messages.append("\n".join(lines))

    insights = analysis.get("key_insights") or []
    if insights:
        messages.append(
            "💡 *Key Insights*\n\n" + "\n".join(f"{n}. {i}" for n, i in enumerate(insights, start=1))
        )

    risk = analysis.get("risk_analysis") or {}
    if risk:
        lines = ["⚠️ *Risk Analysis*", ""]
        if risk.get("volatility_risk"):
            lines.append(f"📉 Volatility Risk: *{risk['volatility_risk']}*")
        if risk.get("sector_risk"):
            lines.append(f"🏢 Sector Risk: *{risk['sector_risk']}*")
        if risk.get("concentration_risk"):
            lines.append(f"🎯 Concentration Risk: *{risk['concentration_risk']}*")
        messages.append("\n".join(lines))

    alloc = analysis.get("allocation_analysis") or {}
    if alloc:
        lines = ["📊 *Allocation Analysis*", ""]
        if alloc.get("equity"):
            lines.append(f"📈 Equity: *{alloc['equity']}*")
        if alloc.get("mutual_funds"):
            lines.append(f"📁 Mutual Funds: *{alloc['mutual_funds']}*")
        if alloc.get("cash"):
            lines.append(f"💵 Cash: *{alloc['cash']}*")
        messages.append("\n".join(lines))

    suggestions = analysis.get("improvement_suggestions") or []
    if suggestions:
        body = "\n".join(f"{n}. {s}" for n, s in enumerate(suggestions, start=1))
        messages.append(f"✨ *Improvement Suggestions*\n\n{body}\n\n⚠️ _{analysis.get('disclaimer')}_")

    return messages
