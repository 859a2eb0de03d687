"""Immutable snapshots of roster and allocation state.

Every roster or allocation edit takes a snapshot and returns a new one;
nothing here is mutated in place. Persistence goes through the stores.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal

from django.db import models

from django_tourops.exceptions import InvariantViolation, ValidationError
from django_tourops.values import (
    AMOUNT_EPSILON,
    HUNDRED,
    PERCENT_EPSILON,
    Amount,
    Percent,
    to_decimal,
)


class ReservationStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    RECRUITING = "recruiting", "Recruiting"
    CONFIRMED = "confirmed", "Confirmed"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"

    @classmethod
    def parse(cls, value) -> "ReservationStatus":
        """Parse a status case-insensitively ("Confirmed", "CONFIRMED", ...)."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown reservation status {value!r}")


# Only these statuses count toward rosters and capacity
ACTIVE_STATUSES = frozenset({ReservationStatus.RECRUITING, ReservationStatus.CONFIRMED})


class PayeeRole(models.TextChoices):
    GUIDE = "guide", "Guide"
    ASSISTANT = "assistant", "Assistant"
    OP = "op", "OP"


@dataclass(frozen=True)
class ReservationSnapshot:
    """Read-only view of one customer reservation."""

    id: str
    product_id: str
    tour_date: date
    total_people: int
    status: ReservationStatus
    prepaid_tip: Amount = field(default_factory=Amount.zero)

    def __post_init__(self):
        people = to_decimal(self.total_people, "total_people")
        if people < 0 or people != people.to_integral_value():
            raise ValidationError(
                f"total_people must be a non-negative integer, got {self.total_people!r}"
            )
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "total_people", int(people))
        if not isinstance(self.status, ReservationStatus):
            object.__setattr__(self, "status", ReservationStatus.parse(self.status))
        if not isinstance(self.prepaid_tip, Amount):
            object.__setattr__(self, "prepaid_tip", Amount(self.prepaid_tip))

    @property
    def is_active(self) -> bool:
        """Recruiting or confirmed, i.e. counted in capacity math."""
        return self.status in ACTIVE_STATUSES


@dataclass(frozen=True)
class TourInstance:
    """One schedulable tour and the reservation ids rostered on it.

    Tours sharing product_id and tour_date form a sibling group.
    """

    id: str
    product_id: str
    tour_date: date
    reservation_ids: frozenset = frozenset()
    guide_id: str | None = None
    assistant_id: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(
            self, "reservation_ids", frozenset(str(rid) for rid in self.reservation_ids)
        )

    @property
    def has_assistant(self) -> bool:
        return bool(self.assistant_id)

    def holds(self, reservation_id: str) -> bool:
        return str(reservation_id) in self.reservation_ids

    def is_sibling_of(self, other: "TourInstance") -> bool:
        return self.product_id == other.product_id and self.tour_date == other.tour_date

    def with_reservation_ids(self, reservation_ids) -> "TourInstance":
        return replace(self, reservation_ids=frozenset(reservation_ids))


@dataclass(frozen=True)
class StaffMember:
    """Staff record as far as OP-share eligibility needs it."""

    member_id: str
    name: str = ""
    position: str = ""
    is_active: bool = True
    hire_date: date | None = None


@dataclass(frozen=True)
class Payee:
    """A party holding a share of the pool.

    percent and amount are two views of one quantity and always agree
    (amount == percent / 100 * pool).
    """

    role: PayeeRole
    member_id: str | None
    percent: Percent
    amount: Amount

    def __post_init__(self):
        if not isinstance(self.role, PayeeRole):
            try:
                object.__setattr__(self, "role", PayeeRole(self.role))
            except ValueError:
                raise ValidationError(f"Unknown payee role {self.role!r}")
        if not isinstance(self.percent, Percent):
            object.__setattr__(self, "percent", Percent(self.percent))
        if not isinstance(self.amount, Amount):
            object.__setattr__(self, "amount", Amount(self.amount))

    def to_dict(self) -> dict:
        return {
            "role": self.role.value,
            "member_id": self.member_id,
            "percent": str(self.percent.value),
            "amount": str(self.amount.value),
        }


@dataclass(frozen=True)
class OpPool:
    """The OP sub-pool: one top-level share split among OP members.

    With no members the share stays reserved but is held by nobody.
    """

    percent: Percent
    amount: Amount
    members: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "members", tuple(self.members))

    @property
    def member_ids(self) -> list[str]:
        return [member.member_id for member in self.members]

    def member(self, member_id: str) -> Payee | None:
        for payee in self.members:
            if payee.member_id == member_id:
                return payee
        return None

    def to_dict(self) -> dict:
        return {
            "percent": str(self.percent.value),
            "amount": str(self.amount.value),
            "members": [member.to_dict() for member in self.members],
        }


@dataclass(frozen=True)
class AllocationLedger:
    """
    The revenue split of one tour's prepaid gratuity pool.

    Invariants (checked by check_invariants):
        - top-level percents (guide, assistant, OP sub-pool) total 100
        - leaf amounts total the pool (an OP sub-pool with no members counts
          as one unassigned leaf)
        - every payee's amount equals percent / 100 * pool
        - with members, OP member percents and amounts total the sub-pool's
    """

    tour_id: str
    pool: Amount
    guide: Payee
    assistant: Payee | None
    op_pool: OpPool
    deduct_card_fee: bool = False

    @property
    def top_level(self) -> list:
        """(role, percent, amount) of each present top-level part."""
        parts = [(PayeeRole.GUIDE, self.guide.percent, self.guide.amount)]
        if self.assistant is not None:
            parts.append((PayeeRole.ASSISTANT, self.assistant.percent, self.assistant.amount))
        parts.append((PayeeRole.OP, self.op_pool.percent, self.op_pool.amount))
        return parts

    @property
    def payees(self) -> list[Payee]:
        """Every party currently holding a share."""
        result = [self.guide]
        if self.assistant is not None:
            result.append(self.assistant)
        result.extend(self.op_pool.members)
        return result

    @property
    def unassigned_amount(self) -> Amount:
        """OP share held by nobody (non-zero only while the OP sub-pool is empty)."""
        if self.op_pool.members:
            return Amount.zero()
        return self.op_pool.amount

    def leaf_total(self) -> Decimal:
        total = sum((payee.amount.value for payee in self.payees), Decimal("0"))
        return total + self.unassigned_amount.value

    def percent_total(self) -> Decimal:
        return sum((percent.value for _, percent, _ in self.top_level), Decimal("0"))

    def check_invariants(self) -> "AllocationLedger":
        """Raise InvariantViolation if the split is inconsistent; return self otherwise."""
        percent_total = self.percent_total()
        if abs(percent_total - HUNDRED) > PERCENT_EPSILON:
            raise InvariantViolation(
                f"Tour '{self.tour_id}': top-level percents total {percent_total}, expected 100"
            )

        leaf_total = self.leaf_total()
        if abs(leaf_total - self.pool.value) > AMOUNT_EPSILON:
            raise InvariantViolation(
                f"Tour '{self.tour_id}': shares total {leaf_total}, expected pool {self.pool.value}"
            )

        parts = list(self.payees) + [
            Payee(PayeeRole.OP, None, self.op_pool.percent, self.op_pool.amount)
        ]
        for payee in parts:
            expected = payee.percent.value * self.pool.value / HUNDRED
            if abs(payee.amount.value - expected) > AMOUNT_EPSILON:
                raise InvariantViolation(
                    f"Tour '{self.tour_id}': {payee.role} {payee.member_id or ''} amount "
                    f"{payee.amount.value} disagrees with {payee.percent.value}% of {self.pool.value}"
                )

        if self.op_pool.members:
            member_percent = sum((m.percent.value for m in self.op_pool.members), Decimal("0"))
            member_amount = sum((m.amount.value for m in self.op_pool.members), Decimal("0"))
            if abs(member_percent - self.op_pool.percent.value) > PERCENT_EPSILON:
                raise InvariantViolation(
                    f"Tour '{self.tour_id}': OP members hold {member_percent}%, "
                    f"sub-pool is {self.op_pool.percent.value}%"
                )
            if abs(member_amount - self.op_pool.amount.value) > AMOUNT_EPSILON:
                raise InvariantViolation(
                    f"Tour '{self.tour_id}': OP members hold {member_amount}, "
                    f"sub-pool is {self.op_pool.amount.value}"
                )
            if len(set(self.op_pool.member_ids)) != len(self.op_pool.members):
                raise InvariantViolation(f"Tour '{self.tour_id}': duplicate OP member")

        return self

    def to_dict(self) -> dict:
        return {
            "tour_id": self.tour_id,
            "pool": str(self.pool.value),
            "deduct_card_fee": self.deduct_card_fee,
            "guide": self.guide.to_dict(),
            "assistant": self.assistant.to_dict() if self.assistant else None,
            "op_pool": self.op_pool.to_dict(),
        }
