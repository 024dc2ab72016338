# kitebot/services/orders.py
from typing import Any, Dict, Optional

ORDER_TYPES = {"MARKET", "LIMIT", "SL", "SL-M"}
PRODUCTS = {"MIS", "CNC", "NRML", "CO", "BO"}


class OrderParseError(ValueError):
    pass


def parse_order_command(text: str) -> Optional[Dict[str, Any]]:
    """
    Parse `/buy SYMBOL QTY [TYPE] [PRICE] [PRODUCT]` (or /sell).

    Optional args may come in any order. Defaults: MARKET, CNC, price 0, NSE.
    `EXCH:SYMBOL` selects another exchange.

    Returns:
        Order params for Kite, or None when SYMBOL / QTY are missing
    """
    parts = text.split()
    if len(parts) < 3:
        return None

    side = parts[0].lstrip("/").split("@")[0].upper()
    symbol = parts[1].upper()
    try:
        quantity = int(parts[2])
    except ValueError:
        raise OrderParseError("Quantity must be a number")

    order_type = "MARKET"
    product = "CNC"
    price = 0.0
    for arg in (p.upper() for p in parts[3:]):
        if arg in ORDER_TYPES:
            order_type = arg
        elif arg in PRODUCTS:
            product = arg
        else:
            try:
                price = float(arg)
            except ValueError:
                continue

    if order_type == "LIMIT" and price == 0:
        raise OrderParseError("For LIMIT orders, you must specify a price.")

    exchange, tradingsymbol = "NSE", symbol
    if ":" in symbol:
        exchange, tradingsymbol = symbol.split(":", 1)

    return {
        "exchange": exchange,
        "tradingsymbol": tradingsymbol,
        "transaction_type": side,
        "quantity": quantity,
        "order_type": order_type,
        "product": product,
        "price": price,
        "trigger_price": 0,
        "validity": "DAY",
    }
