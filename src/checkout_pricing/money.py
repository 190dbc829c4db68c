"""
Currency helpers.

All rounding goes through to_money() so identical inputs always round the
same way, independent of the active decimal context.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    """Coerce int/str/float/Decimal to Decimal (floats go through str)."""
    if isinstance(value, Decimal):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError("empty monetary value")
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"not a number: {value!r}") from e


def to_money(value) -> Decimal:
    """Round to currency precision, half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    """Format as a dollar amount, e.g. $1,234.50 or -$50.00."""
    amount = to_money(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_rate(rate: Decimal) -> str:
    """Format a fractional rate as a percentage without trailing zeros (0.03 -> 3%)."""
    pct = (to_decimal(rate) * 100).normalize()
    if pct == pct.to_integral_value():
        pct = pct.quantize(Decimal("1"))
    return f"{pct}%"
