"""
Monetary Amount Handling

Balances and transaction amounts are fixed precision decimals with 18
integer digits and 2 fractional digits. NEVER uses float arithmetic:
floats are converted through their string form.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Union

# Set global decimal context for financial precision
getcontext().prec = 28

AMOUNT_SCALE = 2
AMOUNT_INTEGER_DIGITS = 18
CENT = Decimal('0.01')
ZERO = Decimal('0.00')

AmountLike = Union[Decimal, int, float, str]


def quantize_amount(value: AmountLike) -> Decimal:
    """
    Convert a value to a two-place Decimal.

    Raises:
        ValueError: if the value is not a finite number or needs more than
            18 integer digits
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")

    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Not a monetary amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")

    if amount.adjusted() >= AMOUNT_INTEGER_DIGITS:
        raise ValueError(f"Amount {value} exceeds {AMOUNT_INTEGER_DIGITS} integer digits")

    rounded = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    # Rounding can carry into one more integer digit
    if rounded.adjusted() >= AMOUNT_INTEGER_DIGITS:
        raise ValueError(f"Amount {value} exceeds {AMOUNT_INTEGER_DIGITS} integer digits")
    return rounded


def is_blank_amount(value) -> bool:
    """True for an amount field nobody filled in (None, empty string or zero)"""
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    try:
        return quantize_amount(value) == ZERO
    except ValueError:
        return False

