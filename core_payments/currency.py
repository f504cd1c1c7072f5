"""
Currency and Money Module

Handles ISO 4217 currency codes, minor-unit conversion and display
formatting. Balances and ledger amounts are stored as integer minor units;
Money is the Decimal view used at the edges. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
import re

getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 Currency Codes with precision and display symbol"""
    ZAR = ("ZAR", 2, "R")
    USD = ("USD", 2, "$")
    EUR = ("EUR", 2, "€")
    GBP = ("GBP", 2, "£")
    JPY = ("JPY", 0, "¥")

    def __init__(self, code: str, precision: int, symbol: str):
        self.code = code
        self.precision = precision
        self.symbol = symbol

    @property
    def quantum(self) -> Decimal:
        """Smallest representable amount, e.g. Decimal('0.01')"""
        return Decimal(1).scaleb(-self.precision)


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation with currency and proper precision.
    """
    amount: Decimal
    currency: Currency

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        rounded = self.amount.quantize(self.currency.quantum, rounding=ROUND_HALF_UP)
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def from_minor_units(cls, minor_units: int, currency: Currency) -> 'Money':
        """Build Money from an integer count of minor units (cents)"""
        return cls(Decimal(minor_units).scaleb(-currency.precision), currency)

    def to_minor_units(self) -> int:
        """Integer count of minor units (cents)"""
        return int(self.amount.scaleb(self.currency.precision))

    def __add__(self, other: 'Money') -> 'Money':
        if self.currency != other.currency:
            raise ValueError(f"Cannot add {self.currency.code} and {other.currency.code}")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        if self.currency != other.currency:
            raise ValueError(f"Cannot subtract {other.currency.code} from {self.currency.code}")
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __abs__(self) -> 'Money':
        return Money(abs(self.amount), self.currency)

    def __lt__(self, other: 'Money') -> bool:
        if self.currency != other.currency:
            raise ValueError(f"Cannot compare {self.currency.code} and {other.currency.code}")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        if self.currency != other.currency:
            raise ValueError(f"Cannot compare {self.currency.code} and {other.currency.code}")
        return self.amount <= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def to_string(self) -> str:
        """Format with ISO code, e.g. 'ZAR 1,500.50'"""
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"

    def format(self) -> str:
        """Format magnitude with the currency symbol, e.g. 'R1,500.50'"""
        return f"{self.currency.symbol}{abs(self.amount):,.{self.currency.precision}f}"

    def plain(self) -> str:
        """Plain decimal string at currency precision, e.g. '1500.50'"""
        return f"{self.amount:.{self.currency.precision}f}"


def format_minor_units(minor_units: int, currency: Currency) -> str:
    """Symbol-formatted magnitude of a minor-unit amount"""
    return Money.from_minor_units(minor_units, currency).format()


def parse_amount(value: str, currency: Currency) -> Money:
    """
    Parse a user-supplied decimal amount string into Money.

    Rejects values that are not plain decimals or that carry more fractional
    digits than the currency allows, rather than silently rounding them.

    Raises:
        ValueError: If the string is not a valid amount for the currency
    """
    if not value or not isinstance(value, str):
        raise ValueError("Amount must be a non-empty string")

    clean_value = value.strip()
    if not re.fullmatch(r'[+-]?\d+(\.\d+)?', clean_value):
        raise ValueError(f"Cannot convert '{value}' to an amount")

    try:
        amount = Decimal(clean_value)
        exact = amount == amount.quantize(currency.quantum, rounding=ROUND_HALF_UP)
        money = Money(amount, currency)
    except InvalidOperation:
        # Beyond the decimal context precision
        raise ValueError(f"Amount '{value}' is out of range")

    if not exact:
        raise ValueError(
            f"Amount '{value}' has more than {currency.precision} decimal places for {currency.code}"
        )

    return money
