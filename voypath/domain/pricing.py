"""Price display helpers; prices are whole yen unless a currency is given."""

from __future__ import annotations

import datetime as dt
import math
from typing import Optional

_CURRENCY_SYMBOLS = {"JPY": "¥", "USD": "$", "EUR": "€", "GBP": "£", "CNY": "¥"}


def format_price(amount: Optional[float], currency: str = "JPY") -> str:
    if amount is None:
        return "-"
    symbol = _CURRENCY_SYMBOLS.get(currency.upper())
    if currency.upper() in {"JPY", "CNY"}:
        text = f"{int(round(amount)):,}"
    else:
        text = f"{amount:,.2f}"
    return f"{symbol}{text}" if symbol else f"{text} {currency.upper()}"


def nights_between(check_in: Optional[dt.date], check_out: Optional[dt.date]) -> int:
    if check_in is None or check_out is None:
        return 0
    return max(0, (check_out - check_in).days)


def hotel_total(price_per_night: Optional[float], check_in: Optional[dt.date], check_out: Optional[dt.date]) -> Optional[float]:
    """Total stay price; a single night when dates are missing."""
    if price_per_night is None:
        return None
    nights = nights_between(check_in, check_out) or 1
    return price_per_night * nights


def price_level_label(price_level: Optional[int]) -> str:
    if not price_level:
        return ""
    return "¥" * max(1, min(4, int(price_level)))


def price_range_label(prices: list[float], currency: str = "JPY") -> str:
    valid = [p for p in prices if p is not None and not math.isnan(p)]
    if not valid:
        return "-"
    low, high = min(valid), max(valid)
    if low == high:
        return format_price(low, currency)
    return f"{format_price(low, currency)} - {format_price(high, currency)}"
