"""Django Tour Ops - Roster reconciliation and tip-pool allocation for sibling tours."""

__version__ = "0.1.0"


def load_roster(tour_id: str, **stores):
    """Derive every roster view of a tour from the stores."""
    from django_tourops.services import load_roster as _load_roster

    return _load_roster(tour_id, **stores)


def reassign_reservation(from_tour_id: str, to_tour_id: str, reservation_id: str, **stores):
    """Move a reservation between sibling tours, unassigning first."""
    from django_tourops.services import reassign_reservation as _reassign_reservation

    return _reassign_reservation(from_tour_id, to_tour_id, reservation_id, **stores)


def load_ledger(tour_id: str, **kwargs):
    """Get the saved tip split of a tour, or its default split."""
    from django_tourops.services import load_ledger as _load_ledger

    return _load_ledger(tour_id, **kwargs)


__all__ = [
    "load_ledger",
    "load_roster",
    "reassign_reservation",
]
