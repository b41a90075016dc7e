"""
Money and Display Formatting Module

Decimal-backed money with ISO 4217 precision plus the display helpers used by
the projection layer. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
import re

from .errors import InvalidAmount

# Set global decimal context for financial precision
getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 Currency Codes with precision and display symbol"""
    USD = ("USD", 2, "$")
    EUR = ("EUR", 2, "€")
    GBP = ("GBP", 2, "£")
    CAD = ("CAD", 2, "CA$")
    JPY = ("JPY", 0, "¥")

    def __init__(self, code: str, precision: int, symbol: str):
        self.code = code
        self.precision = precision
        self.symbol = symbol


def quantize(value: Decimal, currency: Currency) -> Decimal:
    """Round a Decimal half-up to the currency's minor unit"""
    return value.quantize(Decimal('0.1') ** currency.precision, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation with currency and proper precision.
    """
    amount: Decimal
    currency: Currency = Currency.USD

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))
        object.__setattr__(self, 'amount', quantize(self.amount, self.currency))

    @classmethod
    def zero(cls, currency: Currency = Currency.USD) -> 'Money':
        return cls(Decimal('0'), currency)

    def _check_currency(self, other: 'Money', verb: str) -> None:
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __abs__(self) -> 'Money':
        return Money(abs(self.amount), self.currency)

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for logs and error messages"""
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"


# Largest magnitude accepted from callers; well inside the 28-digit context
MAX_AMOUNT = Decimal('999999999999999.99')

_AMOUNT_PATTERN = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)$')
_AMOUNT_NOISE = re.compile(r'[\s,]|CA\$|[$€£¥]')


def parse_amount(value: Any, currency: Currency = Currency.USD) -> Money:
    """
    Coerce user input into Money

    Accepts Money, Decimal, int or strings such as "$1,250.00". Only currency
    symbols, thousands separators and whitespace are stripped from strings;
    whatever remains must be a plain decimal number. Floats are converted
    through their string form.

    Raises:
        InvalidAmount: If the value is not numeric, not finite or larger
            in magnitude than MAX_AMOUNT
    """
    if isinstance(value, Money):
        return value
    if isinstance(value, bool) or value is None:
        raise InvalidAmount(f"Amount must be numeric, got {value!r}")
    if isinstance(value, str):
        clean_value = _AMOUNT_NOISE.sub('', value)
        if not _AMOUNT_PATTERN.match(clean_value):
            raise InvalidAmount(f"Cannot convert '{value}' to an amount")
        value = clean_value
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise InvalidAmount(f"Cannot convert '{value}' to an amount")
    if not amount.is_finite():
        raise InvalidAmount(f"Amount must be finite, got {value!r}")
    if abs(amount) > MAX_AMOUNT:
        raise InvalidAmount(f"Amount exceeds the maximum of {MAX_AMOUNT}")
    try:
        return Money(amount, currency)
    except InvalidOperation:
        raise InvalidAmount(f"Cannot represent '{value}' as {currency.code}")


def format_currency(money: Money, whole: bool = False) -> str:
    """
    Format money for display: ``$1,234.56``, or ``$1,235`` with ``whole``.
    Negative amounts are prefixed with a minus sign before the symbol.
    """
    amount = abs(money.amount)
    if whole:
        amount = amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP)
        body = f"{amount:,.0f}"
    else:
        body = f"{amount:,.{money.currency.precision}f}"
    sign = "-" if money.is_negative() else ""
    return f"{sign}{money.currency.symbol}{body}"


def mask_account_number(account_number: Optional[str]) -> str:
    """Show only the last four characters of an account number"""
    if not account_number:
        return ""
    return "****" + account_number[-4:]
