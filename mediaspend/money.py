"""
MediaSpend - Money Boundary Helpers.

Stored plan records carry money as display strings such as "$3,100.00".
These helpers convert at the I/O edge only: everything inside the engine
works on Decimal values without intermediate rounding.
"""

import logging
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Any

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")

# Anything that is not a digit, sign or decimal point
CURRENCY_CLEAN_PATTERN = re.compile(r"[^0-9.\-]")


def parse_money(value: Any) -> Decimal:
    """
    Converts a stored money value to Decimal.

    Accepts Decimal, int, float, or strings carrying currency symbols,
    thousands separators and whitespace. Accounting style parentheses
    mark a negative amount.

    Args:
        value: Raw value from a record.

    Returns:
        The amount as Decimal, or Decimal('0') when the value is empty
        or cannot be parsed.

    Example:
        >>> parse_money("$3,100.00")
        Decimal('3100.00')
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return ZERO
        return Decimal(str(value))

    text = str(value).strip()
    if not text:
        return ZERO

    negative = text.startswith("(") and text.endswith(")")
    cleaned = CURRENCY_CLEAN_PATTERN.sub("", text)
    if not cleaned or cleaned in ("-", ".", "-."):
        logger.debug("Unparseable money value %r treated as zero", value)
        return ZERO

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        logger.debug("Unparseable money value %r treated as zero", value)
        return ZERO

    return -abs(amount) if negative else amount


def quantize_money(amount: Decimal) -> Decimal:
    """Rounds to cents with Banker's Rounding."""
    return amount.quantize(CENT, rounding=ROUND_HALF_EVEN)


def format_money(amount: Decimal, symbol: str = "$") -> str:
    """
    Formats an amount for display, e.g. ``$3,100.00`` or ``-$12.50``.

    Args:
        amount: Amount to format.
        symbol: Currency symbol prefix.

    Returns:
        Display string rounded to cents.
    """
    rounded = quantize_money(amount)
    if rounded == 0:
        rounded = abs(rounded)
    if rounded < 0:
        return f"-{symbol}{-rounded:,.2f}"
    return f"{symbol}{rounded:,.2f}"
