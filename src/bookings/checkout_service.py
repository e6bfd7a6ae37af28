from typing import Callable, Dict, Optional, Set, Tuple
from datetime import date, datetime, timedelta, timezone
import threading
import logging

from src.availability.availability_gate import AvailabilityGate
from src.availability.schemas import DateSelectionResult
from src.bookings.lifecycle import days_until
from src.bookings.schemas import Booking, CallerContext, CheckoutRequest, ReservationRequest
from src.collaborators.base import BookingStore, CapacitySource, OfferSource
from src.offers.offer_resolver import OfferResolver
from src.pricing.price_calculator import PriceCalculator
from src.pricing.schemas import HeadcountSelection, RateCard, QuoteResponse
from src.exceptions import CheckoutInProgress, ValidationError

logger = logging.getLogger(__name__)

class CheckoutRegistry:
    """In-flight checkout sessions and completed submissions by idempotency key.

    Held in memory for the life of the process; completed entries expire
    after a day.
    """

    def __init__(self, ttl: timedelta = timedelta(hours=24)):
        self._in_flight: Set[str] = set()
        self._completed: Dict[Tuple[str, str], Tuple[Booking, datetime]] = {}
        self._ttl = ttl
        self._lock = threading.Lock()

    def begin(self, session_key: str) -> None:
        """Claim a session; a second claim before release is rejected"""
        with self._lock:
            if session_key in self._in_flight:
                raise CheckoutInProgress()
            self._in_flight.add(session_key)

    def release(self, session_key: str) -> None:
        with self._lock:
            self._in_flight.discard(session_key)

    def _cleanup_expired(self) -> None:
        # Caller holds the lock
        now = datetime.now(timezone.utc)
        expired = [k for k, (_, expires_at) in self._completed.items() if expires_at <= now]
        for k in expired:
            del self._completed[k]

    def get(self, key: Tuple[str, str]) -> Optional[Booking]:
        with self._lock:
            self._cleanup_expired()
            entry = self._completed.get(key)
            return entry[0] if entry else None

    def record(self, key: Tuple[str, str], booking: Booking) -> None:
        with self._lock:
            self._cleanup_expired()
            self._completed[key] = (booking, datetime.now(timezone.utc) + self._ttl)

    def __len__(self) -> int:
        with self._lock:
            return len(self._completed)

class CheckoutService:
    """Quote, date selection and reservation submission for travelers"""

    def __init__(
        self,
        store: BookingStore,
        capacity_source: CapacitySource,
        offer_source: OfferSource,
        price_calculator: Optional[PriceCalculator] = None,
        today: Optional[Callable[[], date]] = None,
        registry: Optional[CheckoutRegistry] = None
    ):
        self.store = store
        self.gate = AvailabilityGate(capacity_source)
        self.offer_resolver = OfferResolver(offer_source)
        self.price_calculator = price_calculator or PriceCalculator()
        self._today = today or date.today
        self.registry = registry if registry is not None else CheckoutRegistry()

    def quote(
        self,
        activity_id: int,
        package_id: int,
        headcounts: HeadcountSelection,
        rate_card: RateCard
    ) -> QuoteResponse:
        """Price a headcount selection with the currently active offer"""

        offer = self.offer_resolver.resolve(activity_id, package_id)
        breakdown = self.price_calculator.compute(headcounts, rate_card, offer)

        return QuoteResponse(
            activity_id=activity_id,
            package_id=package_id,
            resolved_rates=self.price_calculator.resolve_rates(rate_card),
            total_persons=headcounts.total,
            offer=offer,
            breakdown=breakdown,
            display=breakdown.presented()
        )

    def select_date(
        self,
        activity_id: int,
        package_id: int,
        booking_date: str,
        requested_count: Optional[int] = None
    ) -> DateSelectionResult:
        """Informational check when a traveler picks a date"""

        verdict = self.gate.check(activity_id, package_id, booking_date, requested_count)
        reset = verdict.available_spots < 1

        if reset:
            message = "This date is fully booked, please choose another date"
        elif not verdict.available:
            message = f"Only {verdict.available_spots} spots left for this date"
        else:
            message = f"{verdict.available_spots} spots available"

        return DateSelectionResult(verdict=verdict, reset_date=reset, message=message)

    def submit(self, request: CheckoutRequest, context: CallerContext) -> Booking:
        """Re-check capacity and submit the reservation to the booking store"""

        replay_key = (context.user_email, request.idempotency_key) if request.idempotency_key else None
        if replay_key:
            previous = self.registry.get(replay_key)
            if previous is not None:
                logger.info("Replaying checkout %s for %s", request.idempotency_key, context.user_email)
                return previous

        requested = request.headcounts.total
        if requested < 1:
            raise ValidationError("At least one traveler is required to book")

        if days_until(request.booking_date, self._today()) < 0:
            raise ValidationError("Cannot book for past dates")

        session_key = context.session_key
        self.registry.begin(session_key)

        try:
            offer = self.offer_resolver.resolve(request.activity_id, request.package_id)
            price = self.price_calculator.compute(request.headcounts, request.rate_card, offer)

            # Authoritative re-check; must succeed before the store is contacted
            verdict = self.gate.check(
                request.activity_id, request.package_id, request.booking_date, requested
            )
            self.gate.ensure_sufficient(verdict, requested)

            reservation = ReservationRequest(
                activity_id=request.activity_id,
                activity_title=request.activity_title,
                activity_location=request.activity_location,
                image=request.image,
                description=request.description,
                booking_date=request.booking_date,
                package_id=request.package_id,
                package_name=request.package_name,
                price=price,
                offer=offer,
                people_counts=request.headcounts,
                total_persons=requested,
                payment_method=request.payment_method,
                contact_email=request.contact_email or context.user_email,
                contact_phone=request.contact_phone,
                ticket_instructions=request.ticket_instructions,
                itinerary=request.itinerary,
                cancellation_policy=request.cancellation_policy,
                idempotency_key=request.idempotency_key
            )

            booking = self.store.create_reservation(reservation, context)
        finally:
            self.registry.release(session_key)

        if replay_key:
            self.registry.record(replay_key, booking)

        logger.info(
            "Reservation %s submitted for activity %s on %s (%s persons, total %.2f)",
            booking.id, request.activity_id, request.booking_date, requested, price.total
        )
        return booking
