"""Configuration for django-tourops.

All settings are read lazily so tests can override them with override_settings.
"""

from decimal import Decimal, InvalidOperation

from django.conf import settings

from django_tourops.exceptions import TourOpsConfigError


DEFAULT_CARD_FEE_RATE = Decimal("0.05")
DEFAULT_OP_POSITIONS = ("op", "office manager")
DEFAULT_OP_PROBATION_MONTHS = 3


def get_card_fee_rate() -> Decimal:
    """Get the card-processing fee deducted from prepaid tips.

    Reads TOUROPS_CARD_FEE_RATE, a fraction in [0, 1) (0.05 means 5%).

    Raises:
        TourOpsConfigError: If the value is not a number in [0, 1)
    """
    raw = getattr(settings, "TOUROPS_CARD_FEE_RATE", DEFAULT_CARD_FEE_RATE)
    try:
        rate = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise TourOpsConfigError(f"TOUROPS_CARD_FEE_RATE must be a number, got {raw!r}")
    if not rate.is_finite() or rate < 0 or rate >= 1:
        raise TourOpsConfigError(
            f"TOUROPS_CARD_FEE_RATE must be within [0, 1), got {raw!r}"
        )
    return rate


def get_op_positions() -> frozenset[str]:
    """Get the staff positions eligible for the OP share (lower-cased)."""
    positions = getattr(settings, "TOUROPS_OP_POSITIONS", DEFAULT_OP_POSITIONS)
    if isinstance(positions, str) or not positions:
        raise TourOpsConfigError(
            "TOUROPS_OP_POSITIONS must be a non-empty list of position names"
        )
    return frozenset(str(position).strip().lower() for position in positions)


def get_op_probation_months() -> int:
    """Get the probation window, in months, during which new OP staff get no share."""
    months = getattr(settings, "TOUROPS_OP_PROBATION_MONTHS", DEFAULT_OP_PROBATION_MONTHS)
    if isinstance(months, bool) or not isinstance(months, int) or months < 0:
        raise TourOpsConfigError(
            f"TOUROPS_OP_PROBATION_MONTHS must be a non-negative integer, got {months!r}"
        )
    return months


def strict_invariants() -> bool:
    """Whether a broken roster partition raises instead of being logged.

    Defaults to DEBUG: loud in development, tolerant in production.
    """
    return bool(getattr(settings, "TOUROPS_STRICT_INVARIANTS", settings.DEBUG))
