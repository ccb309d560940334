"""Amount parsing and currency rounding utilities."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
import re

CENT = Decimal("0.01")


def round_currency(value) -> Decimal:
    """Round a money value to cents using banker's rounding.

    Every place that rounds money goes through this function so that
    repeated rounding never drifts in one direction.

    Args:
        value: Decimal, int, float or numeric string

    Returns:
        Decimal quantized to two places (half-even)
    """
    if not isinstance(value, Decimal):
        # str() keeps floats like 2.675 at their printed value
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_EVEN)


def to_cents(value) -> int:
    """Return an amount as integer cents."""
    return int(round_currency(value) * 100)


def parse_amount(amount_str: str) -> Decimal:
    """Parse an amount string into a Decimal rounded to cents.

    Handles various formats:
    - "123.45"
    - "$123.45"
    - "-123.45"
    - "-$123.45"
    - "1,234.56"
    - "(123.45)" (negative in parentheses)

    Args:
        amount_str: Amount string

    Returns:
        Decimal amount

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if not amount_str or not amount_str.strip():
        raise ValueError("Empty amount string")

    # Remove whitespace
    amount_str = amount_str.strip()

    # Handle parentheses notation (negative)
    is_negative = False
    if amount_str.startswith("(") and amount_str.endswith(")"):
        is_negative = True
        amount_str = amount_str[1:-1]

    # Remove currency symbols
    amount_str = re.sub(r"[$€£¥]", "", amount_str)

    # Remove commas and inner spaces
    amount_str = amount_str.replace(",", "").replace(" ", "")

    try:
        amount = Decimal(amount_str)
    except InvalidOperation as e:
        raise ValueError(f"Could not parse amount '{amount_str}': {e}")

    if not amount.is_finite():
        raise ValueError(f"Could not parse amount '{amount_str}'")

    if is_negative:
        amount = -amount
    return round_currency(amount)
