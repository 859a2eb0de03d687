"""Headcount aggregation for a sibling group.

Only recruiting and confirmed reservations count. total_people is the
authoritative per-reservation headcount.

Property: total_count == sum(assigned_count) + unassigned_count, and
unassigned_count == pending_headcount.
"""

from dataclasses import dataclass, field
from typing import Iterable

from django_tourops.roster import assigned_to, pending
from django_tourops.snapshots import ReservationSnapshot, TourInstance


@dataclass(frozen=True)
class CapacitySummary:
    """Headcounts of a sibling group."""

    total: int
    assigned_by_tour: dict = field(default_factory=dict)
    unassigned: int = 0

    @property
    def assigned(self) -> int:
        return sum(self.assigned_by_tour.values())


def _headcount(reservations: Iterable[ReservationSnapshot]) -> int:
    return sum(reservation.total_people for reservation in reservations)


def assigned_count(tour: TourInstance, reservations: Iterable[ReservationSnapshot]) -> int:
    """People on tour's roster."""
    return _headcount(assigned_to(tour, reservations))


def total_count(reservations: Iterable[ReservationSnapshot]) -> int:
    """Demand for the whole product and date, whichever tour holds it."""
    return _headcount(r for r in reservations if r.is_active)


def total_count_all(reservations: Iterable[ReservationSnapshot]) -> int:
    """Headcount of every reservation, cancelled and completed included."""
    return _headcount(reservations)


def unassigned_count(siblings: Iterable[TourInstance], reservations: Iterable[ReservationSnapshot]) -> int:
    """People not yet on any sibling's roster."""
    reservations = list(reservations)
    assigned = sum(assigned_count(sibling, reservations) for sibling in siblings)
    return total_count(reservations) - assigned


def pending_headcount(siblings: Iterable[TourInstance], reservations: Iterable[ReservationSnapshot]) -> int:
    """People in active pending reservations, counted directly."""
    return _headcount(r for r in pending(siblings, reservations) if r.is_active)


def summarize_capacity(siblings: Iterable[TourInstance], reservations: Iterable[ReservationSnapshot]) -> CapacitySummary:
    """Compute every headcount of a sibling group."""
    siblings = list(siblings)
    reservations = list(reservations)
    return CapacitySummary(
        total=total_count(reservations),
        assigned_by_tour={
            sibling.id: assigned_count(sibling, reservations) for sibling in siblings
        },
        unassigned=unassigned_count(siblings, reservations),
    )
