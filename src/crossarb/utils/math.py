"""
Decimal helpers for price and quantity calculations.

Exchange payloads carry numbers as strings; converting them straight to
Decimal keeps lot-size rounding exact.
"""

from decimal import ROUND_DOWN, Decimal, InvalidOperation


def to_decimal(value: object, default: Decimal | None = None) -> Decimal:
    """
    Convert an exchange value (str, int, float, Decimal) to Decimal.

    Floats go through ``str`` so 0.1 becomes Decimal("0.1"), not its
    binary expansion.

    Args:
        value: Value to convert.
        default: Returned for empty or unparseable input; raises if None.

    Returns:
        Decimal value.
    """
    if isinstance(value, Decimal):
        return value
    try:
        if value is None or value == "":
            raise InvalidOperation
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        if default is not None:
            return default
        raise ValueError(f"Not a decimal value: {value!r}") from None


def safe_divide(numerator: Decimal, denominator: Decimal, default: Decimal = Decimal("0")) -> Decimal:
    """Divide, returning default on division by zero."""
    if denominator == 0:
        return default
    return numerator / denominator


def round_step(value: Decimal, step_size: Decimal) -> Decimal:
    """
    Round a quantity down to the step size.

    Uses floor to ensure we don't exceed available balance.

    Example:
        >>> round_step(Decimal("0.123456"), Decimal("0.0001"))
        Decimal('0.1234')
    """
    if step_size <= 0:
        return value
    steps = (value / step_size).to_integral_value(rounding=ROUND_DOWN)
    return (steps * step_size).quantize(step_size)


def format_decimal(value: Decimal) -> str:
    """Format without exponent or trailing zeros, as exchanges expect."""
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
