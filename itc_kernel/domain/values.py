"""
Values -- Immutable, self-validating monetary value objects.

Responsibility:
    Provides Currency and Money, the exact decimal types every ITC
    computation is expressed in. Tax amounts, eligible and blocked splits,
    register balances and matching differences are all Money.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every engine and service module.

Invariants enforced:
    - Amounts are always Decimal, never binary float. Floats passed in are
      converted through ``str`` so no binary artefacts leak in.
    - Arithmetic never silently crosses currencies.
    - No automatic rounding. ``round()`` is explicit and rounds half-up to
      the currency's ISO 4217 decimal places (2 for INR).

Failure modes:
    - InvalidCurrencyError on construction with an unknown currency code.
    - CurrencyMismatchError when arithmetic or comparison mixes currencies.
    - ValueError when the amount cannot be parsed as a Decimal.

Audit relevance:
    The exact-sum checks (eligible + blocked == tax, closing == opening +
    claimed - reversed) depend on Decimal-only arithmetic here.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from itc_kernel.domain.currency import minor_units, normalize_code
from itc_kernel.exceptions import CurrencyMismatchError, InvalidCurrencyError


@dataclass(frozen=True, slots=True)
class Currency:
    """ISO 4217 currency code, normalized to upper case and known to ``MINOR_UNITS``."""

    code: str

    def __post_init__(self) -> None:
        normalized = normalize_code(self.code)
        if normalized is None:
            raise InvalidCurrencyError(self.code)
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        return minor_units(self.code)

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


INR = Currency("INR")


def to_decimal(value: Decimal | str | int | float) -> Decimal:
    """Convert a scalar to Decimal without binary float artefacts."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid decimal value: {value!r}") from e


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Pairs a Decimal amount with its Currency. Money is the only type
        monetary fields are carried in between engines and services.

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots)
        - amount is always a Decimal (never float)
        - Addition, subtraction and comparison enforce same currency

    Non-goals:
        - Does NOT perform currency conversion
        - Does NOT auto-round; callers call .round() at presentation
          boundaries only
    """

    amount: Decimal
    currency: Currency = INR

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", to_decimal(self.amount))
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        elif not isinstance(self.currency, Currency):
            raise TypeError(
                f"currency must be Currency or str, got {type(self.currency)}"
            )

    @classmethod
    def of(
        cls,
        amount: Decimal | str | int,
        currency: str | Currency = INR,
    ) -> Money:
        """Factory method for creating Money."""
        return cls(amount=to_decimal(amount), currency=currency)

    @classmethod
    def zero(cls, currency: str | Currency = INR) -> Money:
        """Create a zero amount in the given currency."""
        return cls(amount=Decimal("0"), currency=currency)

    @classmethod
    def sum(
        cls,
        values: Iterable[Money],
        currency: str | Currency = INR,
    ) -> Money:
        """Exact sum of an iterable; zero when empty."""
        total = cls.zero(currency)
        for value in values:
            total = total + value
        return total

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Round to the currency's decimal places (half-up by default)."""
        places = self.currency.decimal_places
        quantum = Decimal(1).scaleb(-places)
        return Money(self.amount.quantize(quantum, rounding=rounding), self.currency)

    def percent(self, pct: Decimal | int | str) -> Money:
        """This amount times ``pct`` / 100, unrounded."""
        return Money(self.amount * to_decimal(pct) / Decimal(100), self.currency)

    def ratio_to(self, other: Money) -> Decimal:
        """self / other as a bare Decimal; zero when other is zero."""
        self._check_currency(other)
        if other.amount == 0:
            return Decimal("0")
        return self.amount / other.amount

    def _check_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency.code, other.currency.code)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> Money:
        return Money(-self.amount, self.currency)

    def __abs__(self) -> Money:
        return Money(abs(self.amount), self.currency)

    def __mul__(self, factor: Decimal | int | str) -> Money:
        if isinstance(factor, Money):
            return NotImplemented
        return Money(self.amount * to_decimal(factor), self.currency)

    def __rmul__(self, factor: Decimal | int | str) -> Money:
        return self.__mul__(factor)

    def __truediv__(self, divisor: Decimal | int | str) -> Money:
        if isinstance(divisor, Money):
            return NotImplemented
        return Money(self.amount / to_decimal(divisor), self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"
