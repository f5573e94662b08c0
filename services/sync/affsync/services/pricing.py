"""Price normalization.

Feeds report prices as numbers, numeric strings, "15.00 GBP", "$1,299.99" or
{"amount": "9.99", "currency": "USD"}. Everything is reduced to float so
price and sale price are comparable.
"""

import math
import re
from typing import Any

_NUMBER_RE = re.compile(r"-?\d[\d,]*(?:\.\d+)?")
_CURRENCY_RE = re.compile(r"\b([A-Z]{3})\b")


def parse_price(value: Any) -> float | None:
    """Parse a price-like value into a float (None when absent or unparseable)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        return parse_price(value.get("amount", value.get("_")))
    if isinstance(value, (int, float)):
        number = float(value)
        return None if math.isnan(number) else number
    match = _NUMBER_RE.search(str(value))
    if not match:
        return None
    return float(match.group().replace(",", ""))


def split_price_currency(value: Any) -> tuple[float | None, str | None]:
    """Split "15.00 GBP" into (15.0, "GBP"); currency is None when not present."""
    amount = parse_price(value)
    if not isinstance(value, str):
        return amount, None
    match = _CURRENCY_RE.search(value.upper())
    return amount, match.group(1) if match else None


def is_on_sale(price: float | None, sale_price: float | None) -> bool:
    """On sale only when both prices are present and 0 < sale < price."""
    if price is None or sale_price is None:
        return False
    return 0 < sale_price < price
