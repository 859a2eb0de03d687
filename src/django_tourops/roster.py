"""Roster reconciliation across sibling tours.

Tours that share a product and a calendar date compete for the same
reservations. A reservation id may sit on at most one sibling's roster;
anything on no roster is pending.

These functions are pure: they take snapshots and return views or new
TourInstance snapshots. Store-backed operations live in services.py.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, TYPE_CHECKING

from django_tourops.exceptions import AlreadyAssignedError, ValidationError
from django_tourops.snapshots import ReservationSnapshot, TourInstance

if TYPE_CHECKING:
    from django_tourops.capacity import CapacitySummary


@dataclass(frozen=True)
class ElsewhereAssignment:
    """A reservation rostered on a sibling tour."""

    reservation: ReservationSnapshot
    tour_id: str


@dataclass(frozen=True)
class RosterView:
    """Disjoint views of a sibling group from one tour's point of view."""

    tour: TourInstance
    assigned: list[ReservationSnapshot] = field(default_factory=list)
    elsewhere: list[ElsewhereAssignment] = field(default_factory=list)
    pending: list[ReservationSnapshot] = field(default_factory=list)
    inactive: list[ReservationSnapshot] = field(default_factory=list)
    capacity: "CapacitySummary | None" = None
    conflicts: dict = field(default_factory=dict)


def _others(tour: TourInstance, siblings: Iterable[TourInstance]) -> list[TourInstance]:
    return [sibling for sibling in siblings if sibling.id != tour.id]


def _group(tour: TourInstance, siblings: Iterable[TourInstance]) -> list[TourInstance]:
    """The sibling group including tour itself, tour's copy taking precedence."""
    return [tour] + _others(tour, siblings)


def assigned_to(tour: TourInstance, reservations: Iterable[ReservationSnapshot]) -> list[ReservationSnapshot]:
    """Recruiting or confirmed reservations rostered on tour."""
    return [
        reservation for reservation in reservations
        if tour.holds(reservation.id) and reservation.is_active
    ]


def assigned_elsewhere(
    tour: TourInstance,
    siblings: Iterable[TourInstance],
    reservations: Iterable[ReservationSnapshot],
) -> list[ElsewhereAssignment]:
    """Reservations rostered on any sibling other than tour, tagged with that sibling."""
    reservations = list(reservations)
    return [
        ElsewhereAssignment(reservation=reservation, tour_id=sibling.id)
        for sibling in _others(tour, siblings)
        for reservation in assigned_to(sibling, reservations)
    ]


def pending(siblings: Iterable[TourInstance], reservations: Iterable[ReservationSnapshot]) -> list[ReservationSnapshot]:
    """Reservations on no sibling's roster, whatever their status.

    Callers that only want assignable reservations filter on is_active.
    """
    held = set()
    for sibling in siblings:
        held |= sibling.reservation_ids
    return [reservation for reservation in reservations if reservation.id not in held]


def inactive(siblings: Iterable[TourInstance], reservations: Iterable[ReservationSnapshot]) -> list[ReservationSnapshot]:
    """Pending reservations that are not recruiting or confirmed."""
    return [reservation for reservation in pending(siblings, reservations) if not reservation.is_active]


def holder_of(reservation_id: str, siblings: Iterable[TourInstance]) -> str | None:
    """Id of the sibling holding reservation_id, or None."""
    for sibling in siblings:
        if sibling.holds(reservation_id):
            return sibling.id
    return None


def find_partition_conflicts(siblings: Iterable[TourInstance]) -> dict[str, list[str]]:
    """Reservation ids held by more than one sibling, mapped to the holders."""
    holders = defaultdict(list)
    for sibling in siblings:
        for reservation_id in sibling.reservation_ids:
            holders[reservation_id].append(sibling.id)
    return {
        reservation_id: sorted(tour_ids)
        for reservation_id, tour_ids in holders.items()
        if len(tour_ids) > 1
    }


def assign(tour: TourInstance, siblings: Iterable[TourInstance], reservation_id: str) -> TourInstance:
    """Return tour with reservation_id added to its roster.

    Raises:
        ValidationError: If reservation_id is empty
        AlreadyAssignedError: If another sibling already holds the reservation
    """
    if not reservation_id:
        raise ValidationError("reservation_id is required")
    reservation_id = str(reservation_id)
    held_by = holder_of(reservation_id, _others(tour, siblings))
    if held_by is not None:
        raise AlreadyAssignedError(reservation_id, tour.id, held_by)
    if tour.holds(reservation_id):
        return tour
    return tour.with_reservation_ids(tour.reservation_ids | {reservation_id})


def unassign(tour: TourInstance, reservation_id: str) -> TourInstance:
    """Return tour without reservation_id; unchanged if it was not rostered."""
    reservation_id = str(reservation_id)
    if not tour.holds(reservation_id):
        return tour
    return tour.with_reservation_ids(tour.reservation_ids - {reservation_id})


def assign_all(tour: TourInstance, siblings: Iterable[TourInstance], reservation_ids: Iterable[str]) -> TourInstance:
    """Return tour with every id added, or raise without adding any.

    Rosters are sets; the order of reservation_ids is not kept.
    """
    siblings = list(siblings)
    result = tour
    for reservation_id in reservation_ids:
        result = assign(result, siblings, reservation_id)
    return result


def unassign_all(tour: TourInstance) -> TourInstance:
    """Return tour with an empty roster."""
    return tour.with_reservation_ids(frozenset())


def derive_roster(
    tour: TourInstance,
    siblings: Iterable[TourInstance],
    reservations: Iterable[ReservationSnapshot],
) -> RosterView:
    """Build every roster view of tour's sibling group in one pass."""
    from django_tourops.capacity import summarize_capacity

    group = _group(tour, siblings)
    reservations = list(reservations)
    return RosterView(
        tour=tour,
        assigned=assigned_to(tour, reservations),
        elsewhere=assigned_elsewhere(tour, group, reservations),
        pending=[r for r in pending(group, reservations) if r.is_active],
        inactive=inactive(group, reservations),
        capacity=summarize_capacity(group, reservations),
        conflicts=find_partition_conflicts(group),
    )
