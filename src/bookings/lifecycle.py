from typing import Dict, Optional, Tuple, Union
from datetime import datetime, date, time, timedelta, timezone
import math
import threading
import logging

from src.bookings.schemas import (
    Booking, BookingStatus, BookingStatusCounts, CallerContext, CancellationEligibility
)
from src.collaborators.base import BookingStore
from src.config import settings
from src.exceptions import (
    CancellationIneligible, InvalidStatusTransition, TransientCollaboratorError, ValidationError
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

BOOKING_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}

CANCELLABLE_STATUSES = {BookingStatus.PENDING, BookingStatus.CONFIRMED}

_cache_lock = threading.Lock()

def _now() -> datetime:
    return datetime.now(timezone.utc)

def parse_travel_date(value: str) -> datetime:
    """Parse a stored travel date; date-only and naive values are UTC"""
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError) as e:
        raise ValidationError("Invalid date format. Please use YYYY-MM-DD format") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

def days_until(booking_date: str, today: Union[date, datetime]) -> int:
    """Whole calendar days from today's midnight to the travel day's midnight"""
    if isinstance(today, datetime):
        today = today.date()
    travel_day = parse_travel_date(booking_date).date()
    delta = datetime.combine(travel_day, time.min) - datetime.combine(today, time.min)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)

def assert_transition(current: BookingStatus, target: BookingStatus) -> None:
    allowed = BOOKING_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidStatusTransition(current.value, target.value)

class BookingLifecycle:
    """Booking status rules and traveler-initiated cancellation"""

    def __init__(
        self,
        store: BookingStore,
        window_days: Optional[int] = None,
        counts_cache: Optional[Dict[str, Tuple[BookingStatusCounts, datetime]]] = None,
        counts_ttl: Optional[timedelta] = None
    ):
        self.store = store
        self.window_days = window_days if window_days is not None else settings.CANCELLATION_WINDOW_DAYS
        # Shared across instances when the caller keeps one cache per process
        self._status_counts_cache = counts_cache if counts_cache is not None else {}
        # Statuses also change outside this service
        self.counts_ttl = counts_ttl if counts_ttl is not None else timedelta(
            seconds=settings.STATUS_COUNTS_TTL_SECONDS
        )

    def can_cancel(self, booking: Booking, today: Union[date, datetime]) -> bool:
        """Cancellable while PENDING/CONFIRMED and at least the window ahead"""
        if booking.status not in CANCELLABLE_STATUSES:
            return False
        return days_until(booking.booking_date, today) >= self.window_days

    def eligibility(self, booking: Booking, today: Union[date, datetime]) -> CancellationEligibility:
        """Explain whether and why a booking can be cancelled"""

        remaining = days_until(booking.booking_date, today)
        reason = None

        if booking.status not in CANCELLABLE_STATUSES:
            reason = f"Bookings with status {booking.status.value} cannot be cancelled"
        elif remaining < self.window_days:
            reason = (
                f"Cancellation is only possible up to {self.window_days} days "
                f"before the activity date"
            )

        return CancellationEligibility(
            booking_id=booking.id,
            status=booking.status,
            can_cancel=reason is None,
            days_until_activity=remaining,
            window_days=self.window_days,
            reason=reason
        )

    def cancel(
        self,
        booking: Booking,
        context: CallerContext,
        today: Union[date, datetime]
    ) -> Booking:
        """Request cancellation from the store; ineligible requests never reach it"""

        verdict = self.eligibility(booking, today)
        if not verdict.can_cancel:
            raise CancellationIneligible(verdict.reason)

        assert_transition(booking.status, BookingStatus.CANCELLED)

        try:
            updated = self.store.cancel_booking(booking.id, context)
        except TransientCollaboratorError:
            logger.warning("Cancellation of booking %s failed, status left as %s",
                           booking.id, booking.status.value)
            raise

        if updated.status != BookingStatus.CANCELLED:
            updated = updated.model_copy(update={"status": BookingStatus.CANCELLED})

        self.invalidate_status_counts(context)
        logger.info("Booking %s cancelled by %s", booking.id, context.user_email)

        return updated

    def status_counts(self, context: CallerContext) -> BookingStatusCounts:
        """Cached per-status booking counts for the caller"""

        with _cache_lock:
            entry = self._status_counts_cache.get(context.user_email)
        if entry is not None:
            cached, expires_at = entry
            if expires_at > _now():
                return cached

        bookings = self.store.list_bookings(context)
        counts = {status: 0 for status in BookingStatus}
        for booking in bookings:
            counts[booking.status] += 1

        result = BookingStatusCounts(counts=counts, total=len(bookings))
        with _cache_lock:
            self._status_counts_cache[context.user_email] = (result, _now() + self.counts_ttl)
        return result

    def invalidate_status_counts(self, context: CallerContext) -> None:
        with _cache_lock:
            self._status_counts_cache.pop(context.user_email, None)
