"""Pytest configuration for django-tourops tests."""

import pytest

from tests.factories import TOUR_DATE, make_reservation, make_tour


@pytest.fixture
def reservations():
    """Six reservations: four active, one completed, one cancelled."""
    return [
        make_reservation("R1", people=2, tip="20.00"),
        make_reservation("R2", people=3, status="recruiting", tip="15.00"),
        make_reservation("R3", people=4),
        make_reservation("R4", people=1, status="Confirmed", tip="5.00"),
        make_reservation("R5", people=5, status="completed", tip="50.00"),
        make_reservation("R6", people=6, status="cancelled"),
    ]


@pytest.fixture
def siblings():
    """Three sibling tours: A holds R1 and R5, B holds R2, C is empty."""
    return [
        make_tour("A", ["R1", "R5"]),
        make_tour("B", ["R2"], guide_id="guide-2", assistant_id="asst-2"),
        make_tour("C", [], guide_id="guide-3"),
    ]


@pytest.fixture
def db_group(db):
    """Persisted version of the reservations and siblings fixtures."""
    from django_tourops.models import Reservation, Tour

    rows = [
        ("R1", 2, "confirmed", "20.00"),
        ("R2", 3, "recruiting", "15.00"),
        ("R3", 4, "confirmed", "0"),
        ("R4", 1, "confirmed", "5.00"),
        ("R5", 5, "completed", "50.00"),
        ("R6", 6, "cancelled", "0"),
    ]
    for rid, people, status, tip in rows:
        Reservation.objects.create(
            id=rid,
            product_id="ANTELOPE",
            tour_date=TOUR_DATE,
            total_people=people,
            status=status,
            prepaid_tip=tip,
        )
    Tour.objects.create(id="A", product_id="ANTELOPE", tour_date=TOUR_DATE,
                        reservation_ids=["R1", "R5"], guide_id="guide-1")
    Tour.objects.create(id="B", product_id="ANTELOPE", tour_date=TOUR_DATE,
                        reservation_ids=["R2"], guide_id="guide-2", assistant_id="asst-2")
    Tour.objects.create(id="C", product_id="ANTELOPE", tour_date=TOUR_DATE,
                        reservation_ids=[], guide_id="guide-3")
    # Same date, other product: never a sibling
    Tour.objects.create(id="X", product_id="HORSESHOE", tour_date=TOUR_DATE,
                        reservation_ids=["R9"], guide_id="guide-9")
    return Tour.objects.all()
