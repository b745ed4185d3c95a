"""
Monetary Amount Helpers

Balances and transfer amounts are Decimal with two fractional digits.
NEVER uses float for monetary values.
"""

from decimal import Decimal, InvalidOperation, getcontext
from typing import Union

from .errors import InvalidInputError

# High precision for intermediate arithmetic
getcontext().prec = 28

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Union[str, int, Decimal]) -> Decimal:
    """
    Convert a stored or user-supplied value to Decimal.

    Raises:
        InvalidInputError: value is a float, not numeric, or not finite
    """
    if isinstance(value, (bool, float)):
        raise InvalidInputError("Amounts must be given as strings, integers or Decimal")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidInputError("Amount is not a valid decimal number") from None
    if not result.is_finite():
        raise InvalidInputError("Amount must be a finite number")
    return result


def quantize(value: Decimal) -> Decimal:
    """Fix a Decimal at two fractional digits"""
    return value.quantize(CENT)


def _to_cents(value: Decimal, field: str) -> Decimal:
    try:
        rounded = quantize(value)
    except InvalidOperation:
        raise InvalidInputError(f"{field} is too large") from None
    if rounded != value:
        raise InvalidInputError(f"{field} cannot have more than two decimal places")
    return rounded


def parse_amount(value: Union[str, int, Decimal]) -> Decimal:
    """
    Validate a transfer amount.

    Returns:
        Positive Decimal with exactly two fractional digits

    Raises:
        InvalidInputError: not positive, or more than two fractional digits
    """
    amount = to_decimal(value)
    if amount <= 0:
        raise InvalidInputError("Amount must be positive", amount=amount)
    return _to_cents(amount, "Amount")


def parse_balance(value: Union[str, int, Decimal]) -> Decimal:
    """Validate a card balance (zero allowed, negative rejected)"""
    balance = to_decimal(value)
    if balance < 0:
        raise InvalidInputError("Balance cannot be negative", balance=balance)
    return _to_cents(balance, "Balance")
