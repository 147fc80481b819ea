"""
Money value type.

Amounts are held as integer minor units tagged with an ISO currency code.
Fractional math (percentages, tax rates) goes through Decimal and is rounded
half-up back to minor units; floats never enter the arithmetic.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union


# ISO 4217 exponents that differ from the usual 2
CURRENCY_EXPONENTS = {
    'BHD': 3,
    'CLP': 0,
    'IQD': 3,
    'ISK': 0,
    'JOD': 3,
    'JPY': 0,
    'KRW': 0,
    'KWD': 3,
    'LYD': 3,
    'OMR': 3,
    'TND': 3,
    'UGX': 0,
    'VND': 0,
}
DEFAULT_EXPONENT = 2


def currency_exponent(currency: str) -> int:
    """Number of decimal places of a currency's minor unit."""
    return CURRENCY_EXPONENTS.get(currency.upper(), DEFAULT_EXPONENT)


def round_half_up(value: Decimal) -> int:
    """Round a Decimal amount of minor units to an integer, halves away from zero."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class Money:
    """An exact amount in minor units of a single currency."""
    minor: int
    currency: str

    def __post_init__(self):
        if not isinstance(self.minor, int) or isinstance(self.minor, bool):
            raise TypeError(f"Money minor units must be int, got {type(self.minor).__name__}")
        if not self.currency:
            raise ValueError("Money requires a currency code")
        object.__setattr__(self, 'currency', self.currency.upper())

    @classmethod
    def zero(cls, currency: str) -> 'Money':
        return cls(0, currency.upper())

    @classmethod
    def of(cls, amount: Union[str, int, Decimal], currency: str) -> 'Money':
        """
        Build Money from a major-unit amount such as "19.99".

        Amounts with more precision than the currency allows are rounded half-up.
        """
        if isinstance(amount, float):
            raise TypeError("Money.of does not accept float amounts; pass a string or Decimal")
        currency = currency.upper()
        scaled = Decimal(str(amount)).scaleb(currency_exponent(currency))
        return cls(round_half_up(scaled), currency)

    @property
    def exponent(self) -> int:
        return currency_exponent(self.currency)

    @property
    def amount(self) -> Decimal:
        """Major-unit Decimal, for display and serialization only."""
        return Decimal(self.minor).scaleb(-self.exponent)

    def _check(self, other: 'Money'):
        if not isinstance(other, Money):
            raise TypeError(f"Cannot combine Money with {type(other).__name__}")
        if other.currency != self.currency:
            raise ValueError(f"Currency mismatch: {self.currency} vs {other.currency}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check(other)
        return Money(self.minor + other.minor, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check(other)
        return Money(self.minor - other.minor, self.currency)

    def __mul__(self, factor: int) -> 'Money':
        if not isinstance(factor, int) or isinstance(factor, bool):
            raise TypeError("Money can only be multiplied by an integer; use percentage() for rates")
        return Money(self.minor * factor, self.currency)

    __rmul__ = __mul__

    def __neg__(self) -> 'Money':
        return Money(-self.minor, self.currency)

    def is_zero(self) -> bool:
        return self.minor == 0

    def is_negative(self) -> bool:
        return self.minor < 0

    def percentage(self, percent: Union[Decimal, int, str]) -> 'Money':
        """Return percent% of this amount, rounded half-up to minor units."""
        raw = Decimal(self.minor) * Decimal(str(percent)) / Decimal(100)
        return Money(round_half_up(raw), self.currency)

    def min(self, other: 'Money') -> 'Money':
        self._check(other)
        return self if self.minor <= other.minor else other

    def max(self, other: 'Money') -> 'Money':
        self._check(other)
        return self if self.minor >= other.minor else other

    def allocate(self, weights: list[int]) -> list['Money']:
        """
        Split this amount across integer weights so the parts sum exactly.

        Uses largest remainder; equal remainders go to the earlier weight.
        All-zero weights put the whole amount on nothing and return zeros.
        """
        if not weights:
            return []
        if any(w < 0 for w in weights):
            raise ValueError("Allocation weights must be non-negative")
        total_weight = sum(weights)
        if total_weight == 0:
            return [Money.zero(self.currency) for _ in weights]

        sign = -1 if self.minor < 0 else 1
        total = abs(self.minor)
        shares = []
        remainders = []
        for index, weight in enumerate(weights):
            share, remainder = divmod(total * weight, total_weight)
            shares.append(share)
            remainders.append((-remainder, index))

        leftover = total - sum(shares)
        for _, index in sorted(remainders)[:leftover]:
            shares[index] += 1

        return [Money(sign * share, self.currency) for share in shares]

    def format(self) -> str:
        """Human-readable amount, e.g. 'USD 19.99'."""
        return f"{self.currency} {self.amount:.{self.exponent}f}"

    def __str__(self) -> str:
        return self.format()


def sum_money(amounts, currency: str) -> Money:
    """Sum an iterable of Money, returning zero in currency when empty."""
    total = Money.zero(currency)
    for amount in amounts:
        total = total + amount
    return total
