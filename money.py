from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

CENT = Decimal("0.01")

DecimalLike = Union[Decimal, int, str]


@dataclass(frozen=True, order=True)
class Money:
    """An amount of money as an integer count of cents.

    Arithmetic stays on integers; converting from a decimal amount rounds
    half away from zero to two places.
    """

    cents: int

    def __post_init__(self) -> None:
        if isinstance(self.cents, bool) or not isinstance(self.cents, int):
            raise TypeError(f"Money needs integer cents, got {self.cents!r}")

    @classmethod
    def zero(cls) -> Money:
        return cls(0)

    @classmethod
    def from_decimal(cls, value: DecimalLike) -> Money:
        if isinstance(value, (float, bool)):
            raise TypeError("Money cannot be built from a float")
        try:
            amount = value if isinstance(value, Decimal) else Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid amount '{value}'") from exc
        if not amount.is_finite():
            raise ValueError(f"Invalid amount '{value}'")
        try:
            quantized = amount.quantize(CENT, rounding=ROUND_HALF_UP)
        except InvalidOperation as exc:
            raise ValueError(f"Amount '{value}' is out of range") from exc
        return cls(int(quantized.scaleb(2)))

    def to_decimal(self) -> Decimal:
        return (Decimal(self.cents) / 100).quantize(CENT)

    def __add__(self, other: object) -> Money:
        if isinstance(other, Money):
            return Money(self.cents + other.cents)
        return NotImplemented

    def __radd__(self, other: object) -> Money:
        # lets sum() start from 0
        if other == 0:
            return self
        return NotImplemented

    def __sub__(self, other: object) -> Money:
        if isinstance(other, Money):
            return Money(self.cents - other.cents)
        return NotImplemented

    def __neg__(self) -> Money:
        return Money(-self.cents)

    def __bool__(self) -> bool:
        return self.cents != 0

    def __str__(self) -> str:
        return f"{self.to_decimal():.2f}"
