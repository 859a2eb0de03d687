"""Storage contracts and their Django ORM implementations.

The roster and allocation code only talks to these protocols, so a host
application can back them with any store. The Django implementations use
the models in this package.
"""

import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Protocol

from django.db import DatabaseError, transaction

from django_tourops.exceptions import (
    InvariantViolation,
    StoreError,
    TourNotFoundError,
    ValidationError,
)
from django_tourops.snapshots import AllocationLedger, ReservationSnapshot, TourInstance
from django_tourops.values import Amount

logger = logging.getLogger(__name__)

STORED_PERCENT = Decimal("0.000001")
STORED_AMOUNT = Decimal("0.0001")


class ReservationStore(Protocol):
    def list_by_product_and_date(self, product_id: str, tour_date: date) -> list[ReservationSnapshot]:
        ...


class TourStore(Protocol):
    def get(self, tour_id: str) -> TourInstance:
        ...

    def list_siblings(self, product_id: str, tour_date: date) -> list[TourInstance]:
        ...

    def set_reservation_ids(self, tour_id: str, reservation_ids: Iterable[str]) -> None:
        ...


class AllocationStore(Protocol):
    def load(self, tour_id: str) -> AllocationLedger | None:
        ...

    def save(self, tour_id: str, ledger: AllocationLedger) -> None:
        ...


# =============================================================================
# Django implementations
# =============================================================================


def _reservation_snapshot(row) -> ReservationSnapshot:
    return ReservationSnapshot(
        id=row.id,
        product_id=row.product_id,
        tour_date=row.tour_date,
        total_people=row.total_people,
        status=row.status,
        prepaid_tip=Amount(row.prepaid_tip or 0),
    )


def _tour_instance(row) -> TourInstance:
    return TourInstance(
        id=row.id,
        product_id=row.product_id,
        tour_date=row.tour_date,
        reservation_ids=frozenset(row.reservation_ids or []),
        guide_id=row.guide_id or None,
        assistant_id=row.assistant_id or None,
    )


class DjangoReservationStore:
    """Reservations read from the Reservation model."""

    def list_by_product_and_date(self, product_id: str, tour_date: date) -> list[ReservationSnapshot]:
        from django_tourops.models import Reservation

        try:
            rows = list(
                Reservation.objects.filter(product_id=product_id, tour_date=tour_date).order_by("id")
            )
        except DatabaseError as e:
            raise StoreError(f"Could not list reservations for {product_id} on {tour_date}: {e}") from e
        return [_reservation_snapshot(row) for row in rows]


class DjangoTourStore:
    """Tours read from and written to the Tour model."""

    def get(self, tour_id: str) -> TourInstance:
        from django_tourops.models import Tour

        try:
            return _tour_instance(Tour.objects.get(pk=tour_id))
        except Tour.DoesNotExist:
            raise TourNotFoundError(tour_id)
        except DatabaseError as e:
            raise StoreError(f"Could not read tour '{tour_id}': {e}") from e

    def list_siblings(self, product_id: str, tour_date: date) -> list[TourInstance]:
        from django_tourops.models import Tour

        try:
            rows = list(Tour.objects.filter(product_id=product_id, tour_date=tour_date).order_by("id"))
        except DatabaseError as e:
            raise StoreError(f"Could not list tours for {product_id} on {tour_date}: {e}") from e
        return [_tour_instance(row) for row in rows]

    def set_reservation_ids(self, tour_id: str, reservation_ids: Iterable[str]) -> None:
        """Replace the roster of tour_id in a single row update."""
        from django_tourops.models import Tour

        ids = sorted({str(rid) for rid in reservation_ids})
        try:
            updated = Tour.objects.filter(pk=tour_id).update(reservation_ids=ids)
        except DatabaseError as e:
            raise StoreError(f"Could not update roster of tour '{tour_id}': {e}") from e
        if updated == 0:
            raise TourNotFoundError(tour_id)
        logger.info(f"Tour {tour_id} roster set to {len(ids)} reservation(s)")


def _percent(value) -> Decimal:
    return value.value.quantize(STORED_PERCENT, rounding=ROUND_HALF_UP)


def _amount(value) -> Decimal:
    return value.value.quantize(STORED_AMOUNT, rounding=ROUND_HALF_UP)


class DjangoAllocationStore:
    """
    Ledgers stored as a TipShare parent row with TipShareOp children.

    save() deletes the previous rows, then writes the parent before the
    children. load() treats a missing or inconsistent child set as
    "no OP members" and returns None for a parent it cannot trust.
    """

    def load(self, tour_id: str) -> AllocationLedger | None:
        from django_tourops.allocation import restore_ledger
        from django_tourops.models import TipShare

        try:
            share = TipShare.objects.filter(tour_id=tour_id).first()
            if share is None:
                return None
            children = list(share.op_shares.all())
        except DatabaseError as e:
            raise StoreError(f"Could not load tip share for tour '{tour_id}': {e}") from e

        try:
            return restore_ledger(
                share.tour_id,
                share.total_tip,
                guide_id=share.guide_id or None,
                guide_percent=share.guide_percent,
                assistant_id=share.assistant_id or None,
                assistant_percent=share.assistant_percent if share.has_assistant else None,
                op_percent=share.op_percent,
                members=[(child.member_id, child.percent) for child in children],
                deduct_card_fee=share.deduct_card_fee,
            )
        except (InvariantViolation, ValidationError) as e:
            logger.warning(f"Discarding unreadable tip share for tour {tour_id}: {e}")
            return None

    def save(self, tour_id: str, ledger: AllocationLedger) -> None:
        from django_tourops.models import TipShare, TipShareOp

        ledger.check_invariants()
        assistant = ledger.assistant
        try:
            with transaction.atomic():
                TipShareOp.objects.filter(tip_share__tour_id=tour_id).delete()
                TipShare.objects.filter(tour_id=tour_id).delete()

                share = TipShare.objects.create(
                    tour_id=tour_id,
                    guide_id=ledger.guide.member_id or "",
                    assistant_id=(assistant.member_id or "") if assistant else "",
                    has_assistant=assistant is not None,
                    guide_percent=_percent(ledger.guide.percent),
                    assistant_percent=_percent(assistant.percent) if assistant else 0,
                    op_percent=_percent(ledger.op_pool.percent),
                    guide_amount=_amount(ledger.guide.amount),
                    assistant_amount=_amount(assistant.amount) if assistant else 0,
                    op_amount=_amount(ledger.op_pool.amount),
                    total_tip=_amount(ledger.pool),
                    deduct_card_fee=ledger.deduct_card_fee,
                )
                TipShareOp.objects.bulk_create([
                    TipShareOp(
                        tip_share=share,
                        member_id=member.member_id,
                        percent=_percent(member.percent),
                        amount=_amount(member.amount),
                        position=position,
                    )
                    for position, member in enumerate(ledger.op_pool.members)
                ])
        except DatabaseError as e:
            raise StoreError(f"Could not save tip share for tour '{tour_id}': {e}") from e

        logger.info(
            f"Saved tip share for tour {tour_id}: pool {ledger.pool}, "
            f"{len(ledger.op_pool.members)} OP member(s)"
        )
