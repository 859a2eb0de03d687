"""Tests for store-backed roster and allocation services."""

import logging

import pytest
from django.test import override_settings

from django_tourops import allocation, services
from django_tourops.exceptions import (
    AlreadyAssignedError,
    InvariantViolation,
    PartialReassignError,
    StoreError,
    TourNotFoundError,
    ValidationError,
)
from django_tourops.models import Reservation, Tour
from django_tourops.roster import find_partition_conflicts
from django_tourops.services import Move
from django_tourops.stores import DjangoAllocationStore, DjangoTourStore
from django_tourops.values import Amount
from tests.factories import TOUR_DATE


class FailingTourStore(DjangoTourStore):
    """Tour store whose roster writes to the given tours fail."""

    def __init__(self, *failing_tour_ids):
        self.failing_tour_ids = set(failing_tour_ids)

    def set_reservation_ids(self, tour_id, reservation_ids):
        if tour_id in self.failing_tour_ids:
            raise StoreError(f"write to {tour_id} refused")
        super().set_reservation_ids(tour_id, reservation_ids)


class RacingTourStore(DjangoTourStore):
    """Tour store where another operator grabs the reservation after it is released."""

    def __init__(self, released_from, grabbed_by):
        self.released_from = released_from
        self.grabbed_by = grabbed_by

    def set_reservation_ids(self, tour_id, reservation_ids):
        super().set_reservation_ids(tour_id, reservation_ids)
        if tour_id == self.released_from:
            tour = Tour.objects.get(pk=self.grabbed_by)
            tour.reservation_ids = tour.reservation_ids + ["R1"]
            tour.save()


def roster_of(tour_id):
    """Stored roster of tour_id as a set."""
    return set(Tour.objects.get(pk=tour_id).reservation_ids)


@pytest.mark.django_db
class TestLoadRoster:
    """Tests for the reconciliation pass."""

    def test_derives_views_from_store(self, db_group):
        """load_roster should derive every view from the stored rows."""
        view = services.load_roster("A")

        assert [r.id for r in view.assigned] == ["R1"]
        assert [(e.reservation.id, e.tour_id) for e in view.elsewhere] == [("R2", "B")]
        assert sorted(r.id for r in view.pending) == ["R3", "R4"]
        assert [r.id for r in view.inactive] == ["R6"]
        assert view.capacity.total == 10
        assert view.capacity.unassigned == 5

    def test_package_level_shortcuts(self, db_group):
        """The package-level wrappers should call through to the services."""
        import django_tourops

        assert django_tourops.load_roster("A") == services.load_roster("A")
        assert django_tourops.load_ledger("A").pool == Amount(70)
        django_tourops.reassign_reservation("A", "C", "R1")
        assert roster_of("C") == {"R1"}

    def test_rerun_is_stable(self, db_group):
        """Running the reconciliation twice should give the same view."""
        assert services.load_roster("B") == services.load_roster("B")

    def test_missing_tour(self, db_group):
        """An unknown tour should raise TourNotFoundError."""
        with pytest.raises(TourNotFoundError):
            services.load_roster("ZZZ")

    def test_conflict_raises_when_strict(self, db_group):
        """A reservation on two rosters should raise in strict mode."""
        Tour.objects.filter(pk="C").update(reservation_ids=["R2"])
        with pytest.raises(InvariantViolation):
            services.load_roster("A")

    @override_settings(TOUROPS_STRICT_INVARIANTS=False)
    def test_conflict_logged_when_lenient(self, db_group, caplog):
        """In lenient mode a conflict should be logged and reported on the view."""
        Tour.objects.filter(pk="C").update(reservation_ids=["R2"])

        view = services.load_roster("A")
        assert view.conflicts == {"R2": ["B", "C"]}
        assert "rostered on more than one tour" in caplog.text
        assert any(record.levelno == logging.ERROR for record in caplog.records)


@pytest.mark.django_db
class TestAssignServices:
    """Tests for assign and unassign through the store."""

    def test_assign_reservation(self, db_group, caplog):
        """assign_reservation should write the roster and log it."""
        caplog.set_level(logging.INFO, logger="django_tourops")

        tour = services.assign_reservation("C", "R3")

        assert tour.holds("R3")
        assert roster_of("C") == {"R3"}
        assert "Assigned reservation R3 to tour C" in caplog.text

    def test_assign_held_elsewhere(self, db_group):
        """A reservation held by a sibling should not be assigned."""
        with pytest.raises(AlreadyAssignedError):
            services.assign_reservation("C", "R1")
        assert roster_of("C") == set()

    def test_assign_other_products_reservation_rejected(self, db_group):
        """A reservation booked for another product or date cannot join the roster."""
        Reservation.objects.create(id="H1", product_id="HORSESHOE", tour_date=TOUR_DATE,
                                   total_people=2, status="confirmed")
        with pytest.raises(ValidationError):
            services.assign_reservation("C", "H1")
        with pytest.raises(ValidationError):
            services.assign_reservation("C", "NOPE")
        assert roster_of("C") == set()

    def test_assign_reads_fresh_siblings(self, db_group):
        """A sibling updated behind the caller's back is still seen."""
        Tour.objects.filter(pk="B").update(reservation_ids=["R2", "R3"])
        with pytest.raises(AlreadyAssignedError):
            services.assign_reservation("C", "R3")

    def test_unassign_reservation(self, db_group):
        """unassign_reservation should drop the id from the stored roster."""
        services.unassign_reservation("A", "R1")
        assert roster_of("A") == {"R5"}

    def test_unassign_absent_does_not_write(self, db_group):
        """Unassigning an absent id should not touch the store."""
        store = FailingTourStore("C")
        tour = services.unassign_reservation("C", "R1", tour_store=store)
        assert tour.reservation_ids == frozenset()

    def test_assign_all_reservations(self, db_group):
        """assign_all_reservations should store every id."""
        services.assign_all_reservations("C", ["R3", "R4"])
        assert roster_of("C") == {"R3", "R4"}

    def test_assign_all_is_all_or_nothing(self, db_group):
        """One conflicting id should leave the stored roster unchanged."""
        with pytest.raises(AlreadyAssignedError):
            services.assign_all_reservations("C", ["R3", "R2"])
        assert roster_of("C") == set()

    def test_assign_pending_reservations(self, db_group):
        """Only recruiting or confirmed reservations on no roster are taken."""
        services.assign_pending_reservations("C")

        assert roster_of("C") == {"R3", "R4"}
        assert services.load_roster("C").capacity.unassigned == 0

    def test_unassign_all_reservations(self, db_group):
        """unassign_all_reservations should empty the stored roster."""
        services.unassign_all_reservations("A")
        assert roster_of("A") == set()


@pytest.mark.django_db
class TestReassign:
    """Tests for moving a reservation between siblings."""

    def test_scenario_d(self, db_group):
        """A moved reservation should show up on the new tour only."""
        services.reassign_reservation("A", "B", "R1")

        assert "R1" in {r.id for r in services.load_roster("B").assigned}
        assert "R1" not in {r.id for r in services.load_roster("A").assigned}
        assert "R1" not in {r.id for r in services.load_roster("C").assigned}

    def test_first_write_failure_changes_nothing(self, db_group):
        """A failed release should leave both rosters as they were."""
        store = FailingTourStore("A")
        with pytest.raises(StoreError) as exc_info:
            services.reassign_reservation("A", "C", "R1", tour_store=store)

        assert not isinstance(exc_info.value, PartialReassignError)
        assert roster_of("A") == {"R1", "R5"}
        assert roster_of("C") == set()

    def test_second_write_failure_leaves_reservation_pending(self, db_group, caplog):
        """A failed second write should leave the reservation pending and logged."""
        store = FailingTourStore("C")
        with pytest.raises(PartialReassignError) as exc_info:
            services.reassign_reservation("A", "C", "R1", tour_store=store)

        error = exc_info.value
        assert (error.reservation_id, error.from_tour_id, error.to_tour_id) == ("R1", "A", "C")
        assert isinstance(error.cause, StoreError)
        assert "R1" not in roster_of("A")
        assert "R1" not in roster_of("C")
        assert "R1" in {r.id for r in services.load_roster("A").pending}
        assert "not assigned to tour C" in caplog.text

    def test_grabbed_after_release(self, db_group):
        """If another sibling takes the reservation between the writes, it stays there."""
        store = RacingTourStore(released_from="A", grabbed_by="C")
        with pytest.raises(PartialReassignError) as exc_info:
            services.reassign_reservation("A", "B", "R1", tour_store=store)

        assert isinstance(exc_info.value.cause, AlreadyAssignedError)
        assert roster_of("C") == {"R1"}
        assert "R1" not in roster_of("B")

    def test_never_on_two_rosters(self, db_group):
        """A chain of moves should never leave an id on two rosters."""
        services.reassign_reservation("A", "C", "R1")
        services.reassign_reservation("C", "B", "R1")
        services.reassign_reservation("B", "A", "R2")

        siblings = DjangoTourStore().list_siblings("ANTELOPE", TOUR_DATE)
        assert find_partition_conflicts(siblings) == {}
        assert roster_of("B") == {"R1"}
        assert roster_of("A") == {"R2", "R5"}

    def test_move_to_other_product_rejected(self, db_group):
        """A tour for another product is not a sibling, so nothing is written."""
        with pytest.raises(ValidationError):
            services.reassign_reservation("A", "X", "R1")

        assert roster_of("A") == {"R1", "R5"}
        assert roster_of("X") == {"R9"}
        with pytest.raises(AlreadyAssignedError):
            services.assign_reservation("C", "R1")
        siblings = DjangoTourStore().list_siblings("ANTELOPE", TOUR_DATE)
        assert find_partition_conflicts(siblings) == {}

    def test_move_from_tour_not_holding_rejected(self, db_group):
        """R2 sits on B, so moving it out of C fails before any write."""
        store = FailingTourStore("A", "B", "C")
        with pytest.raises(ValidationError):
            services.reassign_reservation("C", "A", "R2", tour_store=store)

        assert roster_of("B") == {"R2"}
        assert roster_of("A") == {"R1", "R5"}

    def test_unknown_reservation_rejected(self, db_group):
        """An id on the roster with no booking behind it is not moved."""
        Tour.objects.filter(pk="A").update(reservation_ids=["R1", "R5", "GHOST"])
        with pytest.raises(ValidationError):
            services.reassign_reservation("A", "C", "GHOST")
        assert "GHOST" in roster_of("A")


@pytest.mark.django_db
class TestApplyMoves:
    """Tests for applying planned moves."""

    def test_report_collects_failures(self, db_group):
        """Failed moves should be reported while the rest are applied."""
        store = FailingTourStore("B")
        moves = [
            Move("R1", "A", "C"),
            Move("R2", "B", "C"),
            Move("R5", "A", "B"),
        ]

        report = services.apply_moves(moves, tour_store=store)

        assert report.applied == [moves[0]]
        assert [move for move, _ in report.failed] == [moves[1], moves[2]]
        assert isinstance(report.failed[1][1], PartialReassignError)
        assert not report.ok
        assert roster_of("C") == {"R1"}
        assert roster_of("A") == set()

    def test_all_applied(self, db_group):
        """A clean batch should report every move as applied."""
        report = services.apply_moves([Move("R1", "A", "C")])
        assert report.ok
        assert report.applied == [Move("R1", "A", "C")]

    def test_malformed_move_does_not_stop_batch(self, db_group):
        """A move with no reservation id is reported and the next move still runs."""
        moves = [Move("", "A", "C"), Move("R1", "A", "C"), Move("R2", "B", "X")]

        report = services.apply_moves(moves)

        assert report.applied == [moves[1]]
        assert [move for move, _ in report.failed] == [moves[0], moves[2]]
        assert all(isinstance(error, ValidationError) for _, error in report.failed)
        assert roster_of("C") == {"R1"}
        assert roster_of("B") == {"R2"}


@pytest.mark.django_db
class TestLedgerServices:
    """Tests for loading and saving tip splits."""

    def test_default_ledger_from_prepaid_tips(self, db_group):
        """The default split should start from the rostered prepaid tips, card fee untouched."""
        ledger = services.default_ledger("A")

        assert ledger.pool == Amount(70)
        assert ledger.guide.amount == Amount(63)
        assert ledger.assistant is None
        assert ledger.deduct_card_fee is False

    def test_default_ledger_with_card_fee(self, db_group):
        """deduct_card_fee should take the fee off the default pool."""
        ledger = services.default_ledger("A", deduct_card_fee=True)

        assert ledger.pool == Amount("66.50")
        assert ledger.deduct_card_fee is True

    def test_no_prepaid_tips(self, db_group):
        """A tour with nothing prepaid should have no ledger."""
        assert services.default_ledger("C") is None
        assert services.load_ledger("C") is None

    def test_saved_ledger_wins(self, db_group):
        """A saved split should be loaded instead of the default."""
        edited = allocation.toggle_op_member(services.default_ledger("B"), "op-1", True)
        saved = services.save_ledger(edited)

        loaded = services.load_ledger("B")
        assert loaded.op_pool.member_ids == ["op-1"]
        assert loaded == saved

    def test_save_ledger_uses_given_store(self, db_group):
        """save_ledger should write through the store it is given."""
        store = DjangoAllocationStore()
        ledger = services.default_ledger("B")
        services.save_ledger(ledger, allocation_store=store)
        assert store.load("B").pool == Amount(15)
