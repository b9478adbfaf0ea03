from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any, Optional

QUANTITY_PLACES = 4
_QUANTUM = Decimal(1).scaleb(-QUANTITY_PLACES)
ZERO = Decimal("0")

# plain decimal notation; commas only as thousands separators
_NUMBER_RE = re.compile(r"^[+-]?(?:\d{1,3}(?:,\d{3})+|\d*)(?:\.\d*)?$")


def to_quantity(value: Any) -> Decimal:
    """Coerce ints, strings and Decimals to a Decimal quantity. None and '' are zero."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # floats only arrive from loosely typed callers; go through str to avoid binary noise
        return Decimal(str(value))
    return Decimal(value)


def parse_quantity(token: str) -> Optional[Decimal]:
    """
    Parse a free-text numeric token, returning None when it is not a number
    written in plain decimal notation.

    ``1,200`` reads as twelve hundred; ``1,5``, ``1e3`` and ``NaN`` are not
    quantities and stay text.
    """
    if not isinstance(token, str):
        return None
    token = token.strip()
    if not _NUMBER_RE.match(token) or not any(c.isdigit() for c in token):
        return None
    try:
        return Decimal(token.replace(",", ""))
    except InvalidOperation:
        return None


def normalize_quantity(value: Decimal) -> str:
    """
    Render a quantity with at most four fractional digits, trailing zeros stripped.

    >>> normalize_quantity(Decimal("5.000"))
    '5'
    >>> normalize_quantity(Decimal("1.23456"))
    '1.2346'
    """
    with localcontext() as ctx:
        # room for every integer digit plus the fractional places
        ctx.prec = max(ctx.prec, value.adjusted() + QUANTITY_PLACES + 2)
        rounded = value.quantize(_QUANTUM, rounding=ROUND_HALF_UP)
    text = format(rounded, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    return text
