"""Percent and Amount value objects for revenue-share arithmetic."""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from django_tourops.exceptions import ValidationError


Number = Union[Decimal, int, float, str]

# Tolerances for comparisons after lossy percent/amount conversions
AMOUNT_EPSILON = Decimal("0.01")
PERCENT_EPSILON = Decimal("0.000001")

HUNDRED = Decimal("100")
ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_decimal(value: Number, field: str = "value") -> Decimal:
    """Coerce a numeric input to a finite Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1") rather than its
    binary expansion.

    Raises:
        ValidationError: If the value is not a number or is NaN/infinite.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f"{field} must be a number, got {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite, got {value!r}")
    return result


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


@dataclass(frozen=True, order=True)
class Percent:
    """
    Immutable percentage in [0, 100].

    Usage:
        share = Percent(45)
        share.value  # Decimal("45")
        share.of(Amount("200.00"))  # Amount(Decimal("90.00"))
    """
    value: Decimal

    def __post_init__(self):
        value = to_decimal(self.value, "percent")
        if value < 0 or value > HUNDRED:
            raise ValidationError(f"percent must be within [0, 100], got {value}")
        # Use object.__setattr__ because dataclass is frozen
        object.__setattr__(self, "value", value)

    @classmethod
    def zero(cls) -> "Percent":
        return cls(ZERO)

    @classmethod
    def clamped(cls, value: Number) -> "Percent":
        """Build a Percent, pulling drift just outside [0, 100] back in range."""
        return cls(clamp(to_decimal(value, "percent"), ZERO, HUNDRED))

    def of(self, pool: "Amount") -> "Amount":
        """Return the amount this percent represents of pool."""
        return Amount.clamped(pool.value * self.value / HUNDRED)

    def is_close(self, other: "Percent", epsilon: Decimal = PERCENT_EPSILON) -> bool:
        return abs(self.value - other.value) <= epsilon

    def __str__(self) -> str:
        return f"{self.value.normalize():f}%"


@dataclass(frozen=True, order=True)
class Amount:
    """
    Immutable non-negative monetary amount.

    The upper bound (the pool) is contextual and enforced by the ledger.
    Arithmetic keeps full Decimal precision; call quantized() for display.
    """
    value: Decimal

    def __post_init__(self):
        value = to_decimal(self.value, "amount")
        if value < 0:
            raise ValidationError(f"amount must not be negative, got {value}")
        object.__setattr__(self, "value", value)

    @classmethod
    def zero(cls) -> "Amount":
        return cls(ZERO)

    @classmethod
    def clamped(cls, value: Number, ceiling: "Amount | None" = None) -> "Amount":
        """Build an Amount, flooring at zero and optionally capping at ceiling."""
        value = max(ZERO, to_decimal(value, "amount"))
        if ceiling is not None:
            value = min(ceiling.value, value)
        return cls(value)

    def percent_of(self, pool: "Amount") -> Percent:
        """Return the share of pool this amount represents."""
        if pool.value == 0:
            return Percent.zero()
        return Percent.clamped(self.value / pool.value * HUNDRED)

    def quantized(self) -> "Amount":
        """Return rounded to cents (half-up, as receipts show it)."""
        return Amount(self.value.quantize(CENT, rounding=ROUND_HALF_UP))

    def is_close(self, other: "Amount", epsilon: Decimal = AMOUNT_EPSILON) -> bool:
        return abs(self.value - other.value) <= epsilon

    def __add__(self, other: "Amount") -> "Amount":
        return Amount(self.value + other.value)

    def __str__(self) -> str:
        return f"${self.quantized().value}"
