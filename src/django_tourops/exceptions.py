"""Exceptions for django-tourops."""


class TourOpsError(Exception):
    """Base exception for tour operations errors."""
    pass


class ValidationError(TourOpsError, ValueError):
    """Raised when an edit's input is out of domain.

    Raised before any state is touched, so the caller's snapshot is still valid.
    """
    pass


class RosterError(TourOpsError):
    """Base exception for roster assignment errors."""
    pass


class AlreadyAssignedError(RosterError):
    """Raised when a reservation is already held by a sibling tour."""

    def __init__(self, reservation_id: str, tour_id: str, held_by: str):
        self.reservation_id = reservation_id
        self.tour_id = tour_id
        self.held_by = held_by
        super().__init__(
            f"Reservation '{reservation_id}' cannot be assigned to tour '{tour_id}': "
            f"already assigned to tour '{held_by}'"
        )


class InvariantViolation(TourOpsError):
    """Raised when a snapshot breaks a partition or allocation invariant.

    Indicates a defect, not a user error.
    """
    pass


class StoreError(TourOpsError):
    """Raised when a storage collaborator fails to read or write."""
    pass


class TourNotFoundError(StoreError):
    """Raised when a tour does not exist in the store."""

    def __init__(self, tour_id: str):
        self.tour_id = tour_id
        super().__init__(f"Tour '{tour_id}' does not exist")


class PartialReassignError(StoreError):
    """Raised when a reassign released the old tour but could not assign the new one.

    The reservation is left unassigned in every sibling; retrying the
    assignment is safe.
    """

    def __init__(self, reservation_id: str, from_tour_id: str, to_tour_id: str, cause: Exception):
        self.reservation_id = reservation_id
        self.from_tour_id = from_tour_id
        self.to_tour_id = to_tour_id
        self.cause = cause
        super().__init__(
            f"Reservation '{reservation_id}' was released from tour '{from_tour_id}' "
            f"but could not be assigned to tour '{to_tour_id}': {cause}"
        )


class TourOpsConfigError(TourOpsError):
    """Raised when django-tourops configuration is invalid."""
    pass
