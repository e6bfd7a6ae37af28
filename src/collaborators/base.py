"""Contracts for the external collaborators the booking engine consumes.

Transport framing is left to the implementations. Every implementation maps
network or service failures to ``TransientCollaboratorError`` so callers can
retry without guessing at transport details.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from src.bookings.schemas import Booking, BookingStatus, CallerContext, ReservationRequest


class CapacitySource(ABC):
    """Per-date capacity for an activity package."""

    @abstractmethod
    def query_capacity(self, activity_id: int, package_id: int, date: str) -> Dict[str, Any]:
        """Return ``available``, ``bookedCount``, ``totalAvailability``,
        ``availableSpots`` and optionally ``message``."""


class OfferSource(ABC):
    """Active promotions for an activity package."""

    @abstractmethod
    def query_offer(self, activity_id: int, package_id: int) -> Dict[str, Any]:
        """Return ``hasOffer``, ``discountPercentage`` and optionally ``offerTitle``."""


class BookingStore(ABC):
    """Canonical owner of booking records."""

    @abstractmethod
    def create_reservation(self, request: "ReservationRequest", context: "CallerContext") -> "Booking":
        """Create a PENDING booking and return it with its server-assigned id."""

    @abstractmethod
    def get_booking(self, booking_id: str, context: "CallerContext") -> "Booking":
        """Read one booking visible to the caller."""

    @abstractmethod
    def list_bookings(
        self, context: "CallerContext", status: Optional["BookingStatus"] = None
    ) -> List["Booking"]:
        """List the caller's bookings, newest first."""

    @abstractmethod
    def cancel_booking(self, booking_id: str, context: "CallerContext") -> "Booking":
        """Cancel a booking and return the updated record."""

    def find_booking(self, booking_id: str) -> "Booking":
        """Look a booking up without caller scoping (venue verification)."""
        raise NotImplementedError
