"""Snapshot builders shared by the test modules."""

from datetime import date

from django_tourops.snapshots import ReservationSnapshot, StaffMember, TourInstance


TOUR_DATE = date(2026, 5, 1)


def make_reservation(rid, people=2, status="confirmed", tip=0, product_id="ANTELOPE", tour_date=TOUR_DATE):
    """Build a ReservationSnapshot for the default product and date."""
    return ReservationSnapshot(
        id=rid,
        product_id=product_id,
        tour_date=tour_date,
        total_people=people,
        status=status,
        prepaid_tip=tip,
    )


def make_tour(tour_id, reservation_ids=(), guide_id="guide-1", assistant_id=None, product_id="ANTELOPE"):
    """Build a TourInstance for the default product and date."""
    return TourInstance(
        id=tour_id,
        product_id=product_id,
        tour_date=TOUR_DATE,
        reservation_ids=frozenset(reservation_ids),
        guide_id=guide_id,
        assistant_id=assistant_id,
    )


def make_staff(member_id, name, position="OP", is_active=True, hire_date=None):
    """Build a StaffMember, an OP by default."""
    return StaffMember(
        member_id=member_id,
        name=name,
        position=position,
        is_active=is_active,
        hire_date=hire_date,
    )
