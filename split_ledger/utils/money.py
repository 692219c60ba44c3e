"""
Fixed-point money helpers.

Amounts are carried as Decimal at the edges (schemas, DECIMAL(10, 2) columns)
and as integer cents inside every calculation.
"""
from decimal import Decimal, InvalidOperation
from typing import Union

from split_ledger.core.exceptions import InvalidAmount

CENT = Decimal('0.01')

AmountLike = Union[Decimal, int, float, str]


def round_decimal(value: Decimal, precision: Decimal = CENT) -> Decimal:
    """
    Round a Decimal value to the specified precision.

    Uses the context rounding (ROUND_HALF_EVEN), so 100.005 becomes 100.00.

    Example:
        >>> round_decimal(Decimal("43.333333"))
        Decimal('43.33')
    """
    return value.quantize(precision)


def _as_decimal(value: AmountLike) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidAmount("Amount must be numeric", {"amount": value})
    try:
        # floats go through str() so 0.1 stays 0.1 instead of its binary expansion
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmount("Amount is not a number", {"amount": value}) from e


def to_cents(value: AmountLike) -> int:
    """
    Convert an amount to integer cents.

    Raises:
        InvalidAmount: for NaN, infinities, or more than two decimal places
    """
    amount = _as_decimal(value)
    if not amount.is_finite():
        raise InvalidAmount("Amount must be finite", {"amount": value})

    cents = amount * 100
    if cents != cents.to_integral_value():
        raise InvalidAmount("Amount has more than two decimal places", {"amount": value})
    return int(cents)


def from_cents(cents: int) -> Decimal:
    """Convert integer cents back to a two-place Decimal."""
    return (Decimal(cents) / 100).quantize(CENT)


def balance_to_cents(value: AmountLike) -> int:
    """
    Bring a balance onto the cent grid.

    Unlike to_cents this tolerates sub-cent noise (banker's rounding), for
    balances handed in by callers rather than read from DECIMAL(10, 2) columns.
    """
    amount = _as_decimal(value)
    if not amount.is_finite():
        raise InvalidAmount("Balance must be finite", {"balance": value})
    return int(round_decimal(amount) * 100)
