"""
Values -- Immutable, self-validating value objects.

Responsibility:
    Provides Currency and Money for every total the engine reports, plus
    ``to_decimal`` for coercing user input into Decimal.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - All monetary amounts are Decimal (never float).
    - Currency codes are validated against CurrencyRegistry at construction.
    - Arithmetic never mixes currencies.

Failure modes:
    - InvalidCurrencyError on unsupported codes.
    - CurrencyMismatchError when arithmetic mixes currencies.
    - ValueError when an amount cannot be converted to Decimal.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pricing_kernel.domain.currency import CurrencyRegistry
from pricing_kernel.exceptions import CurrencyMismatchError, InvalidCurrencyError

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """
    Coerce user input (Decimal, int, str, float) into Decimal.

    Floats go through ``str()`` so 0.1 becomes Decimal("0.1").

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be numeric, got bool")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"{field_name} must be numeric, got {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"{field_name} must be finite, got {value!r}")
    return result


def to_optional_decimal(value: Any, field_name: str = "value") -> Decimal | None:
    """Like ``to_decimal`` but passes None through."""
    if value is None:
        return None
    return to_decimal(value, field_name)


@dataclass(frozen=True, slots=True)
class Currency:
    """
    Supported ISO 4217 currency code.

    Guarantees:
        - code is uppercase, stripped and present in CurrencyRegistry.
    """

    code: str

    def __post_init__(self) -> None:
        normalized = self.code.upper().strip() if self.code else ""
        if not CurrencyRegistry.is_valid(normalized):
            raise InvalidCurrencyError(str(self.code))
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def symbol(self) -> str:
        return CurrencyRegistry.get_symbol(self.code)

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount paired with its Currency.

    Guarantees:
        - amount is always Decimal.
        - Arithmetic enforces the same-currency constraint.

    Non-goals:
        - Does NOT convert currencies.
        - Does NOT auto-round; callers call ``.round()`` explicitly.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", to_decimal(self.amount, "amount"))
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        elif not isinstance(self.currency, Currency):
            raise TypeError(f"currency must be Currency or str, got {type(self.currency)}")

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        """Factory method for creating Money."""
        return cls(amount=to_decimal(amount, "amount"), currency=currency)

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        return cls(amount=ZERO, currency=currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == ZERO

    @property
    def is_negative(self) -> bool:
        return self.amount < ZERO

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Round to the currency's minor units."""
        places = self.currency.decimal_places
        quantum = Decimal("1") if places == 0 else Decimal("1").scaleb(-places)
        return Money(amount=self.amount.quantize(quantum, rounding=rounding), currency=self.currency)

    def clamp_non_negative(self) -> Money:
        """Return zero in place of a negative amount."""
        if self.amount < ZERO:
            return Money(amount=ZERO, currency=self.currency)
        return self

    def _check_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency.code, other.currency.code)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __mul__(self, factor: Decimal | int | str) -> Money:
        if isinstance(factor, (int, str)):
            factor = Decimal(str(factor))
        if not isinstance(factor, Decimal):
            return NotImplemented
        return Money(amount=self.amount * factor, currency=self.currency)

    def __rmul__(self, factor: Decimal | int | str) -> Money:
        return self.__mul__(factor)

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

    def format(self) -> str:
        """Human-readable amount with the currency symbol."""
        rounded = self.round()
        return f"{self.currency.symbol}{rounded.amount:,}"

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"
