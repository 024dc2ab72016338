# kitebot/services/portfolio.py
"""
Portfolio aggregation for AI analysis.

Normalizes Kite holdings / positions / MF holdings into one shape and derives
the summary metrics (allocation, P&L, concentration, sector exposure) that are
sent to the model.
"""
from __future__ import annotations
from typing import Any, Dict, List, Tuple
import asyncio
import logging
import math

logger = logging.getLogger(__name__)

# Approximate sector for common NSE symbols
SECTOR_MAP: Dict[str, str] = {
    # IT
    "INFY": "IT", "TCS": "IT", "WIPRO": "IT", "HCLTECH": "IT", "TECHM": "IT",
    "LTIM": "IT", "MPHASIS": "IT", "COFORGE": "IT",
    # Banking
    "HDFCBANK": "Banking", "ICICIBANK": "Banking", "KOTAKBANK": "Banking",
    "SBIN": "Banking", "AXISBANK": "Banking", "INDUSINDBK": "Banking",
    # Financial Services
    "BAJFINANCE": "Financial Services", "BAJAJFINSV": "Financial Services", "HDFC": "Financial Services",
    # Pharma
    "SUNPHARMA": "Pharma", "DRREDDY": "Pharma", "CIPLA": "Pharma", "DIVISLAB": "Pharma", "APOLLOHOSP": "Pharma",
    # Auto
    "TATAMOTORS": "Auto", "MARUTI": "Auto", "M&M": "Auto", "BAJAJ-AUTO": "Auto",
    "HEROMOTOCO": "Auto", "EICHERMOT": "Auto",
    # FMCG
    "HINDUNILVR": "FMCG", "ITC": "FMCG", "NESTLEIND": "FMCG", "BRITANNIA": "FMCG",
    "DABUR": "FMCG", "TATACONSUM": "FMCG",
    # Energy
    "RELIANCE": "Energy", "ONGC": "Energy", "BPCL": "Energy", "IOC": "Energy",
    "NTPC": "Energy", "POWERGRID": "Energy",
    # Metals
    "TATASTEEL": "Metals", "JSWSTEEL": "Metals", "HINDALCO": "Metals", "VEDL": "Metals", "COALINDIA": "Metals",
    # Telecom
    "BHARTIARTL": "Telecom", "IDEA": "Telecom",
    # Cement
    "ULTRACEMCO": "Cement", "GRASIM": "Cement", "SHREECEM": "Cement", "AMBUJACEM": "Cement",
    # Infra
    "LT": "Infrastructure", "ADANIENT": "Infrastructure", "ADANIPORTS": "Infrastructure",
}

# Checked top to bottom; first keyword hit wins
FUND_CATEGORY_RULES: List[Tuple[str, Tuple[str, ...]]] = [
    ("Large Cap", ("large cap", "largecap", "bluechip")),
    ("Mid Cap", ("mid cap", "midcap")),
    ("Small Cap", ("small cap", "smallcap")),
    ("Flexi Cap", ("flexi", "flexible")),
    ("Multi Cap", ("multi cap", "multicap")),
    ("ELSS", ("elss", "tax")),
    ("Index Fund", ("index", "nifty", "sensex")),
    ("Debt", ("debt", "bond", "income")),
    ("Liquid", ("liquid", "money market")),
    ("Hybrid", ("hybrid", "balanced", "advantage")),
]


def get_sector(symbol: str | None) -> str:
    clean = (symbol or "").removeprefix("NSE:").removeprefix("BSE:")
    return SECTOR_MAP.get(clean, "Other")


def categorize_fund(fund_name: str | None) -> str:
    name = (fund_name or "").lower()
    for category, keywords in FUND_CATEGORY_RULES:
        if any(k in name for k in keywords):
            return category
    return "Other"


def _percent(part: float, total: float) -> int:
    """Whole percent, rounding halves up (0 when total is 0)."""
    if total <= 0:
        return 0
    return int(math.floor(part / total * 100 + 0.5))


def normalize_holdings(raw: List[Dict[str, Any]] | None) -> List[Dict[str, Any]]:
    out = []
    for h in raw or []:
        qty = h.get("quantity", 0) or 0
        avg = h.get("average_price", 0.0) or 0.0
        ltp = h.get("last_price", 0.0) or 0.0
        out.append({
            "type": "equity",
            "symbol": h.get("tradingsymbol"),
            "exchange": h.get("exchange") or "NSE",
            "quantity": qty,
            "avg_price": avg,
            "current_price": ltp,
            "market_value": qty * ltp,
            "invested_value": qty * avg,
            "pnl": h.get("pnl") or qty * (ltp - avg),
            "sector": get_sector(h.get("tradingsymbol")),
        })
    return out


def normalize_positions(raw: Dict[str, List[Dict[str, Any]]] | None) -> List[Dict[str, Any]]:
    """Open net positions only; closed (zero quantity) rows are dropped."""
    net = (raw or {}).get("net") or []
    out = []
    for p in net:
        qty = p.get("quantity", 0) or 0
        if qty == 0:
            continue
        out.append({
            "type": "position",
            "symbol": p.get("tradingsymbol"),
            "product": p.get("product"),
            "quantity": qty,
            "exposure": abs(qty * (p.get("last_price", 0.0) or 0.0)),
            "pnl": p.get("pnl") or 0,
        })
    return out


def normalize_mf_holdings(raw: List[Dict[str, Any]] | None) -> List[Dict[str, Any]]:
    out = []
    for h in raw or []:
        units = h.get("quantity", 0) or 0
        invested = (h.get("average_price", 0.0) or 0.0) * units
        current = (h.get("last_price", 0.0) or 0.0) * units
        out.append({
            "type": "mutual_fund",
            "fund_name": h.get("fund"),
            "tradingsymbol": h.get("tradingsymbol"),
            "category": categorize_fund(h.get("fund")),
            "units": units,
            "invested_value": invested,
            "current_value": current,
            "pnl": current - invested,
        })
    return out


def aggregate_portfolio(
    holdings: List[Dict[str, Any]] | None,
    positions: Dict[str, List[Dict[str, Any]]] | None,
    mf_holdings: List[Dict[str, Any]] | None,
) -> Dict[str, Any]:
    """
    Build the aggregated view sent to the model.

    Args:
        holdings: Raw Kite equity holdings
        positions: Raw Kite positions ({"day": [...], "net": [...]})
        mf_holdings: Raw Kite MF holdings

    Returns:
        Dict with portfolio_summary, sector_exposure, mf_category_exposure,
        top_5_holdings and the normalized holdings / positions / mutual_funds
    """
    eq = normalize_holdings(holdings)
    pos = normalize_positions(positions)
    mfs = normalize_mf_holdings(mf_holdings)

    equity_value = sum(h["market_value"] for h in eq)
    mf_value = sum(m["current_value"] for m in mfs)
    total_value = equity_value + mf_value

    positions_exposure = sum(p["exposure"] for p in pos)
    positions_pnl = sum(p["pnl"] for p in pos)

    total_pnl = sum(h["pnl"] for h in eq) + sum(m["pnl"] for m in mfs)
    total_invested = sum(h["invested_value"] for h in eq) + sum(m["invested_value"] for m in mfs)

    sector_exposure: Dict[str, float] = {}
    for h in eq:
        sector_exposure[h["sector"]] = sector_exposure.get(h["sector"], 0) + h["market_value"]

    mf_category_exposure: Dict[str, float] = {}
    for m in mfs:
        mf_category_exposure[m["category"]] = mf_category_exposure.get(m["category"], 0) + m["current_value"]

    # largest first, equity and MF together
    ranked = sorted(
        [{"name": h["symbol"], "value": h["market_value"], "type": "equity"} for h in eq]
        + [{"name": m["fund_name"], "value": m["current_value"], "type": "mf"} for m in mfs],
        key=lambda x: x["value"],
        reverse=True,
    )
    top_value = ranked[0]["value"] if ranked else 0
    top_3_value = sum(x["value"] for x in ranked[:3])

    return {
        "portfolio_summary": {
            "total_value": total_value,
            "total_invested": total_invested,
            "equity_value": equity_value,
            "mf_value": mf_value,
            "equity_allocation_percent": _percent(equity_value, total_value),
            "mutual_fund_allocation_percent": _percent(mf_value, total_value),
            "unrealized_pnl": total_pnl,
            "unrealized_pnl_percent": round(total_pnl / total_invested * 100, 2) if total_invested > 0 else 0,
            "positions_exposure": positions_exposure,
            "positions_pnl": positions_pnl,
            "top_holding_concentration_percent": _percent(top_value, total_value),
            "top_3_concentration_percent": _percent(top_3_value, total_value),
            "holdings_count": len(eq) + len(mfs),
        },
        "sector_exposure": sector_exposure,
        "mf_category_exposure": mf_category_exposure,
        "top_5_holdings": ranked[:5],
        "holdings": eq,
        "positions": pos,
        "mutual_funds": mfs,
    }


async def _or_default(coro, default, what: str):
    try:
        return await coro
    except Exception as e:
        logger.warning("Could not fetch %s for analysis, continuing without it: %s", what, e)
        return default


async def fetch_portfolio(kite) -> Dict[str, Any]:
    """Fetch holdings, positions and MF holdings concurrently and aggregate them."""
    holdings, positions, mf_holdings = await asyncio.gather(
        _or_default(kite.get_holdings(), [], "holdings"),
        _or_default(kite.get_positions(), {"net": []}, "positions"),
        _or_default(kite.get_mf_holdings(), [], "MF holdings"),
    )
    return aggregate_portfolio(holdings, positions, mf_holdings)
