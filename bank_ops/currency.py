"""
Currency and Money Helpers

Currency codes supported by the bank and Decimal helpers for monetary
amounts. NEVER uses float for monetary values: amounts are stored at the
scale of the decimal(15, 2) money columns.
"""

from decimal import Decimal, InvalidOperation, getcontext
from enum import Enum
from typing import Union

from .errors import ValidationError

# Set global decimal context for financial precision
getcontext().prec = 28

MONEY_SCALE = Decimal('0.01')
MAX_AMOUNT = Decimal('9999999999999.99')  # decimal(15, 2)


class Currency(Enum):
    """ISO 4217 currency codes with display precision"""
    COP = ("COP", 0)  # Colombian Peso, amounts shown without decimals
    USD = ("USD", 2)  # US Dollar
    EUR = ("EUR", 2)  # Euro

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision

    @classmethod
    def from_code(cls, code: str) -> 'Currency':
        """Look up a currency by its ISO code"""
        try:
            return cls[code.upper()]
        except KeyError:
            raise ValidationError(f"Unsupported currency: {code}")


AmountLike = Union[Decimal, int, str]


def to_amount(value: AmountLike) -> Decimal:
    """
    Convert a value to a monetary Decimal at the money scale

    Args:
        value: Decimal, int or decimal string
        
    Returns:
        Decimal with exactly two decimal places

    Raises:
        ValidationError: If the value is a float, malformed, out of range
            or has nonzero digits past the second decimal place
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError("Monetary amounts must be Decimal, int or decimal string, not float")

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, str):
        try:
            amount = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(f"Cannot convert '{value}' to an amount")
    else:
        raise ValidationError(f"Unsupported amount type: {type(value).__name__}")

    if not amount.is_finite():
        raise ValidationError("Amount must be a finite number")

    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"Amount {amount} exceeds the supported range")

    # Refused, not rounded: "100.005" fails, "100.500" passes
    quantized = amount.quantize(MONEY_SCALE)
    if quantized != amount:
        raise ValidationError(f"Amount {amount} has more than 2 decimal places")
    return quantized


def to_positive_amount(value: AmountLike, field_name: str = "amount") -> Decimal:
    """Convert and require a strictly positive amount"""
    amount = to_amount(value)
    if amount <= Decimal('0'):
        raise ValidationError(f"{field_name} must be positive")
    return amount


def format_amount(amount: Decimal, currency: Currency) -> str:
    """Format for display"""
    if currency.precision == 0:
        return f"{currency.code} {amount:,.0f}"
    return f"{currency.code} {amount:,.{currency.precision}f}"
