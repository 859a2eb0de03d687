"""Store-backed roster and allocation services.

Every service re-reads the tours it touches from the store before acting
and derives views from that fresh read; no in-memory roster is trusted.

Stores default to the Django implementations; pass others to back the
services with a different store.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable

from django_tourops import allocation, conf, roster
from django_tourops.exceptions import (
    InvariantViolation,
    PartialReassignError,
    RosterError,
    StoreError,
    TourOpsError,
    ValidationError,
)
from django_tourops.roster import RosterView
from django_tourops.snapshots import AllocationLedger, TourInstance
from django_tourops.stores import (
    AllocationStore,
    DjangoAllocationStore,
    DjangoReservationStore,
    DjangoTourStore,
    ReservationStore,
    TourStore,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Move:
    """Planned transfer of one reservation between sibling tours."""

    reservation_id: str
    from_tour_id: str
    to_tour_id: str


@dataclass
class MoveReport:
    """Outcome of apply_moves."""

    applied: list[Move] = field(default_factory=list)
    failed: list[tuple] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def _group(tour_id: str, tour_store: TourStore) -> tuple[TourInstance, list[TourInstance]]:
    """Fresh read of tour_id and its whole sibling group (tour included)."""
    tour = tour_store.get(tour_id)
    siblings = tour_store.list_siblings(tour.product_id, tour.tour_date)
    if not any(sibling.id == tour.id for sibling in siblings):
        siblings = [tour] + list(siblings)
    return tour, siblings


def _check_partition(siblings: list[TourInstance]) -> dict:
    conflicts = roster.find_partition_conflicts(siblings)
    if conflicts:
        message = f"Reservations rostered on more than one tour: {conflicts}"
        if conf.strict_invariants():
            raise InvariantViolation(message)
        logger.error(message)
    return conflicts


def _require_reservation(tour: TourInstance, reservation_id: str, reservation_store: ReservationStore) -> None:
    """Raise unless reservation_id is booked for tour's product and date."""
    reservations = reservation_store.list_by_product_and_date(tour.product_id, tour.tour_date)
    if not any(reservation.id == str(reservation_id) for reservation in reservations):
        raise ValidationError(
            f"Reservation '{reservation_id}' is not booked for {tour.product_id} on {tour.tour_date}"
        )


# =============================================================================
# Roster
# =============================================================================


def load_roster(
    tour_id: str,
    *,
    tour_store: TourStore | None = None,
    reservation_store: ReservationStore | None = None,
) -> RosterView:
    """Reconciliation pass: derive every roster view of tour_id from the store.

    Safe to re-run at any time.

    Raises:
        TourNotFoundError: If the tour does not exist
        InvariantViolation: If a reservation sits on two siblings and
            TOUROPS_STRICT_INVARIANTS is on
    """
    tour_store = tour_store or DjangoTourStore()
    reservation_store = reservation_store or DjangoReservationStore()

    tour, siblings = _group(tour_id, tour_store)
    _check_partition(siblings)
    reservations = reservation_store.list_by_product_and_date(tour.product_id, tour.tour_date)
    return roster.derive_roster(tour, siblings, reservations)


def assign_reservation(
    tour_id: str,
    reservation_id: str,
    *,
    tour_store: TourStore | None = None,
    reservation_store: ReservationStore | None = None,
) -> TourInstance:
    """Roster reservation_id on tour_id.

    Raises:
        ValidationError: If the reservation is not booked for the tour's
            product and date
        AlreadyAssignedError: If a sibling tour already holds the reservation
        StoreError: If the write fails
    """
    tour_store = tour_store or DjangoTourStore()
    reservation_store = reservation_store or DjangoReservationStore()
    tour, siblings = _group(tour_id, tour_store)
    _require_reservation(tour, reservation_id, reservation_store)
    updated = roster.assign(tour, siblings, reservation_id)
    if updated is not tour:
        tour_store.set_reservation_ids(tour.id, updated.reservation_ids)
        logger.info(f"Assigned reservation {reservation_id} to tour {tour.id}")
    return updated


def unassign_reservation(tour_id: str, reservation_id: str, *, tour_store: TourStore | None = None) -> TourInstance:
    """Remove reservation_id from tour_id's roster; no write if it is not there."""
    tour_store = tour_store or DjangoTourStore()
    tour = tour_store.get(tour_id)
    updated = roster.unassign(tour, reservation_id)
    if updated is not tour:
        tour_store.set_reservation_ids(tour.id, updated.reservation_ids)
        logger.info(f"Unassigned reservation {reservation_id} from tour {tour.id}")
    return updated


def assign_all_reservations(
    tour_id: str,
    reservation_ids: Iterable[str],
    *,
    tour_store: TourStore | None = None,
) -> TourInstance:
    """Roster every id on tour_id in one write, or none if any is held elsewhere."""
    tour_store = tour_store or DjangoTourStore()
    tour, siblings = _group(tour_id, tour_store)
    updated = roster.assign_all(tour, siblings, reservation_ids)
    if updated is not tour:
        tour_store.set_reservation_ids(tour.id, updated.reservation_ids)
        added = len(updated.reservation_ids) - len(tour.reservation_ids)
        logger.info(f"Assigned {added} reservation(s) to tour {tour.id}")
    return updated


def assign_pending_reservations(
    tour_id: str,
    *,
    tour_store: TourStore | None = None,
    reservation_store: ReservationStore | None = None,
) -> TourInstance:
    """Roster every recruiting or confirmed reservation no sibling holds."""
    view = load_roster(tour_id, tour_store=tour_store, reservation_store=reservation_store)
    return assign_all_reservations(
        tour_id,
        [reservation.id for reservation in view.pending],
        tour_store=tour_store,
    )


def unassign_all_reservations(tour_id: str, *, tour_store: TourStore | None = None) -> TourInstance:
    """Empty tour_id's roster."""
    tour_store = tour_store or DjangoTourStore()
    tour = tour_store.get(tour_id)
    updated = roster.unassign_all(tour)
    tour_store.set_reservation_ids(tour.id, updated.reservation_ids)
    logger.info(f"Unassigned all {len(tour.reservation_ids)} reservation(s) from tour {tour.id}")
    return updated


def reassign_reservation(
    from_tour_id: str,
    to_tour_id: str,
    reservation_id: str,
    *,
    tour_store: TourStore | None = None,
    reservation_store: ReservationStore | None = None,
) -> TourInstance:
    """Move reservation_id from one sibling tour to another.

    The store has no cross-row transaction, so this is two writes: the old
    tour releases the reservation first, then the new tour takes it. A
    reservation is therefore never on two rosters; at worst it ends up on
    none.

    Returns:
        The destination tour after the move.

    Raises:
        ValidationError: If the tours are not siblings, the old tour does
            not hold the reservation, or it is not booked for their product
            and date (nothing changed)
        StoreError: If releasing from the old tour fails (nothing changed)
        PartialReassignError: If the old tour released the reservation but
            the new tour could not take it; the reservation is now pending
    """
    tour_store = tour_store or DjangoTourStore()
    reservation_store = reservation_store or DjangoReservationStore()

    from_tour = tour_store.get(from_tour_id)
    to_tour = tour_store.get(to_tour_id)
    if not from_tour.is_sibling_of(to_tour):
        raise ValidationError(
            f"Tours '{from_tour.id}' and '{to_tour.id}' are not siblings; "
            f"reservations only move within one product and date"
        )
    if not reservation_id or not from_tour.holds(reservation_id):
        raise ValidationError(f"Tour '{from_tour.id}' does not hold reservation '{reservation_id}'")
    _require_reservation(to_tour, reservation_id, reservation_store)

    unassign_reservation(from_tour_id, reservation_id, tour_store=tour_store)
    try:
        return assign_reservation(
            to_tour_id, reservation_id, tour_store=tour_store, reservation_store=reservation_store
        )
    except (StoreError, RosterError, ValidationError) as e:
        logger.warning(
            f"Reservation {reservation_id} released from tour {from_tour_id} "
            f"but not assigned to tour {to_tour_id}: {e}"
        )
        raise PartialReassignError(reservation_id, from_tour_id, to_tour_id, e) from e


def apply_moves(
    moves: Iterable[Move],
    *,
    tour_store: TourStore | None = None,
    reservation_store: ReservationStore | None = None,
) -> MoveReport:
    """Apply planned moves one at a time, carrying on past failures.

    Each failure is recorded with its error; reservations whose second
    write failed are left pending and can be retried.
    """
    tour_store = tour_store or DjangoTourStore()
    reservation_store = reservation_store or DjangoReservationStore()
    report = MoveReport()
    for move in moves:
        try:
            reassign_reservation(
                move.from_tour_id,
                move.to_tour_id,
                move.reservation_id,
                tour_store=tour_store,
                reservation_store=reservation_store,
            )
        except TourOpsError as e:
            logger.warning(f"Move of reservation {move.reservation_id} failed: {e}")
            report.failed.append((move, e))
        else:
            report.applied.append(move)
    return report


# =============================================================================
# Allocation
# =============================================================================


def default_ledger(
    tour_id: str,
    *,
    deduct_card_fee: bool = False,
    tour_store: TourStore | None = None,
    reservation_store: ReservationStore | None = None,
) -> AllocationLedger | None:
    """Default split of tour_id's prepaid gratuity, or None if nothing was prepaid.

    Reservations carry no payment method, so the card fee is only taken off
    when the caller passes deduct_card_fee=True, typically because at least
    one prepaid tip on the tour was paid by card.
    """
    tour_store = tour_store or DjangoTourStore()
    reservation_store = reservation_store or DjangoReservationStore()

    tour = tour_store.get(tour_id)
    reservations = reservation_store.list_by_product_and_date(tour.product_id, tour.tour_date)
    gross = allocation.prepaid_pool(tour, reservations)
    if gross.value <= 0:
        return None
    pool = allocation.shareable_pool(gross, deduct_card_fee=deduct_card_fee)
    return allocation.initialize(tour, pool, deduct_card_fee=deduct_card_fee)


def load_ledger(
    tour_id: str,
    *,
    allocation_store: AllocationStore | None = None,
    deduct_card_fee: bool = False,
    tour_store: TourStore | None = None,
    reservation_store: ReservationStore | None = None,
) -> AllocationLedger | None:
    """The saved split of tour_id, falling back to the default split.

    Returns None when nothing is saved and no gratuity was prepaid.
    """
    allocation_store = allocation_store or DjangoAllocationStore()
    ledger = allocation_store.load(tour_id)
    if ledger is not None:
        return ledger
    return default_ledger(
        tour_id,
        deduct_card_fee=deduct_card_fee,
        tour_store=tour_store,
        reservation_store=reservation_store,
    )


def save_ledger(ledger: AllocationLedger, *, allocation_store: AllocationStore | None = None) -> AllocationLedger:
    """Persist ledger and return it as read back from the store."""
    allocation_store = allocation_store or DjangoAllocationStore()
    allocation_store.save(ledger.tour_id, ledger)
    return allocation_store.load(ledger.tour_id) or ledger
