"""Booking engine exceptions.

Every error carries the HTTP status the router answers with, so the API
layer can tell capacity failures apart from network failures.
"""

from typing import Optional


class BookingEngineError(Exception):
    """Base booking engine error."""

    status_code = 500

    def __init__(self, detail: str = "An unexpected error occurred") -> None:
        self.detail = detail
        super().__init__(detail)


class ValidationError(BookingEngineError):
    """Malformed or insufficient input; the caller must correct it."""

    status_code = 422

    def __init__(self, detail: str = "Validation failed", errors: Optional[list] = None) -> None:
        self.errors = errors or []
        super().__init__(detail)


class AvailabilityConflict(BookingEngineError):
    """Not enough spots left at submit time."""

    status_code = 409

    def __init__(self, available_spots: int, requested: int) -> None:
        self.available_spots = available_spots
        self.requested = requested
        spots = max(available_spots, 0)
        super().__init__(
            f"Only {spots} spot{'s' if spots != 1 else ''} left for the selected date, "
            f"but {requested} {'were' if requested != 1 else 'was'} requested. "
            "Please reduce the number of travelers or pick another date."
        )


class TransientCollaboratorError(BookingEngineError):
    """A collaborator query failed; the request may be retried as-is."""

    status_code = 503
    retryable = True

    def __init__(self, service: str, detail: Optional[str] = None) -> None:
        self.service = service
        message = f"The {service} service is temporarily unavailable, please retry"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CancellationIneligible(BookingEngineError):
    """Cancellation attempted outside the window or on a terminal booking."""

    status_code = 400


class InvalidStatusTransition(BookingEngineError):
    status_code = 400

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid booking transition: {current} -> {target}")


class DocumentRenderError(BookingEngineError):
    """Scan code rendering failed; the document falls back to a placeholder."""


class BookingNotFound(BookingEngineError):
    status_code = 404

    def __init__(self, booking_id: str) -> None:
        self.booking_id = booking_id
        super().__init__(f"Booking with ID '{booking_id}' not found")


class AccessDenied(BookingEngineError):
    status_code = 403

    def __init__(self, detail: str = "Access denied: Booking does not belong to user") -> None:
        super().__init__(detail)


class CheckoutInProgress(BookingEngineError):
    """A checkout from the same session is already in flight."""

    status_code = 409

    def __init__(self) -> None:
        super().__init__("A checkout for this session is already being processed")


class TicketVerificationError(BookingEngineError):
    status_code = 400
