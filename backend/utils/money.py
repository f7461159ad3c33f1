"""Fixed-precision money: integer minor units tagged with a currency code."""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from fractions import Fraction
from typing import Sequence, Union

from exceptions import CurrencyMismatch
from utils.currency import format_currency, get_exponent


Weight = Union[int, Fraction]


@dataclass(frozen=True, order=False)
class Money:
    """
    An amount in minor units (paise, cents) plus an ISO currency code.

    Amounts are plain ints; floats are rejected at construction so no
    binary floating point ever reaches the ledger.
    """
    amount: int
    currency: str

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise TypeError(f"Money amount must be an int of minor units, got {type(self.amount).__name__}")
        if not self.currency:
            raise ValueError("Money requires a currency code")

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(0, currency)

    @classmethod
    def from_decimal(cls, value, currency: str) -> "Money":
        """
        Build Money from a major-unit decimal value such as "12.35" or 12.35.

        Floats are converted through their string repr, then rounded half-up
        to the currency's minor unit.
        """
        if isinstance(value, float):
            value = repr(value)
        exponent = get_exponent(currency)
        quantum = Decimal(1).scaleb(-exponent)
        minor = (Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP) * (10 ** exponent))
        return cls(int(minor), currency)

    def to_decimal(self) -> Decimal:
        return Decimal(self.amount).scaleb(-get_exponent(self.currency))

    def _check_currency(self, other: "Money"):
        if not isinstance(other, Money):
            raise TypeError(f"Expected Money, got {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatch(
                f"Cannot combine {self.currency} with {other.currency}",
                left_currency=self.currency,
                right_currency=other.currency,
            )

    def add(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def subtract(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def multiply_by_quantity(self, quantity: int) -> "Money":
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise TypeError("Quantity must be an int")
        return Money(self.amount * quantity, self.currency)

    def allocate(self, weights: Sequence[Weight]) -> list["Money"]:
        """
        Split this amount into len(weights) shares that sum exactly to it.

        Each share is truncated to floor(amount * weight / total_weight); the
        leftover minor units are then handed out one at a time in
        weight-descending, then index order. The same inputs always give the
        same output, and a non-negative amount never yields a negative share.
        """
        if not weights:
            raise ValueError("Cannot allocate across an empty set of weights")

        fractions = [Fraction(w) for w in weights]
        if any(w < 0 for w in fractions):
            raise ValueError("Allocation weights must be non-negative")
        total_weight = sum(fractions)
        if total_weight == 0:
            raise ValueError("Allocation weights must not all be zero")

        if self.amount < 0:
            return [Money(-share.amount, self.currency) for share in Money(-self.amount, self.currency).allocate(weights)]

        shares = [(self.amount * w.numerator * total_weight.denominator)
                  // (w.denominator * total_weight.numerator) for w in fractions]
        residual = self.amount - sum(shares)

        order = sorted(range(len(fractions)), key=lambda i: (-fractions[i], i))
        for idx in order[:residual]:
            shares[idx] += 1

        return [Money(share, self.currency) for share in shares]

    def is_zero(self) -> bool:
        return self.amount == 0

    def __add__(self, other: "Money") -> "Money":
        return self.add(other)

    def __sub__(self, other: "Money") -> "Money":
        return self.subtract(other)

    def __neg__(self) -> "Money":
        return Money(-self.amount, self.currency)

    def __lt__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount >= other.amount

    def __str__(self) -> str:
        return format_currency(self.amount, self.currency)


def sum_money(values: Sequence[Money], currency: str) -> Money:
    """Sum Money values, starting from zero in the given currency."""
    total = Money.zero(currency)
    for value in values:
        total = total + value
    return total
