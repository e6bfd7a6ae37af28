from typing import Any, Callable, Dict, List, Optional
from datetime import date, datetime
from sqlalchemy import func
from sqlalchemy.orm import Session
import time
import logging

from src import models
from src.bookings.lifecycle import assert_transition, days_until
from src.bookings.schemas import Booking, BookingStatus, CallerContext, ReservationRequest
from src.collaborators.base import BookingStore, CapacitySource, OfferSource
from src.exceptions import AccessDenied, AvailabilityConflict, BookingNotFound, ValidationError
from src.pricing.schemas import HeadcountSelection, PriceBreakdown

logger = logging.getLogger(__name__)

DEFAULT_INSTRUCTIONS = (
    "Please arrive 30 minutes before your scheduled activity time. "
    "Bring a valid ID and this booking confirmation. "
    "For any questions, contact our support team."
)

DEFAULT_ITINERARY = (
    "Your {title} experience includes:\n"
    "- Welcome and safety briefing\n"
    "- Activity duration as specified\n"
    "- All necessary equipment provided\n"
    "- Professional guide assistance\n"
    "- Light refreshments (if included in package)"
)

class SqlBookingStore(CapacitySource, OfferSource, BookingStore):
    """Local booking store backed by the application database"""

    def __init__(self, db: Session, today: Optional[Callable[[], date]] = None):
        self.db = db
        self._today = today or date.today

    # ------------------------------------------------------------------
    # Capacity
    # ------------------------------------------------------------------

    def query_capacity(self, activity_id: int, package_id: int, date: str) -> Dict[str, Any]:
        """Activity availability minus persons on non-cancelled bookings for the date"""

        if days_until(date, self._today()) < 0:
            raise ValidationError("Cannot book for past dates")

        activity = self.db.get(models.Activity, activity_id)
        if not activity:
            raise ValidationError("Activity not found")

        booked_count = self._booked_count(activity_id, date)
        total_availability = activity.availability or 0
        available_spots = total_availability - booked_count

        return {
            "available": available_spots > 0,
            "activityId": activity_id,
            "date": date,
            "bookedCount": booked_count,
            "totalAvailability": total_availability,
            "availableSpots": available_spots,
            "message": "Available" if available_spots > 0
            else "This activity is fully booked for the selected date",
        }

    def _booked_count(self, activity_id: int, booking_date: str) -> int:
        booked = self.db.query(func.coalesce(func.sum(models.Booking.total_persons), 0)).filter(
            models.Booking.activity_id == activity_id,
            models.Booking.booking_date == booking_date,
            models.Booking.status != BookingStatus.CANCELLED.value
        ).scalar()
        return int(booked or 0)

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    def query_offer(self, activity_id: int, package_id: int) -> Dict[str, Any]:
        """Highest active discount whose window contains today and covers the package"""

        today = self._today()
        candidates = self.db.query(models.Offer).filter(
            models.Offer.activity_id == activity_id,
            models.Offer.active.is_(True)
        ).all()

        best = None
        for offer in candidates:
            if offer.start_date and offer.start_date > today:
                continue
            if offer.end_date and offer.end_date < today:
                continue
            packages = [int(p) for p in (offer.selected_packages or [])]
            if package_id not in packages:
                continue
            if best is None or (offer.discount_percentage or 0) > (best.discount_percentage or 0):
                best = offer

        if best is None:
            return {"hasOffer": False, "discountPercentage": 0}

        return {
            "hasOffer": True,
            "discountPercentage": best.discount_percentage or 0,
            "offerTitle": best.title,
        }

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    def create_reservation(self, request: ReservationRequest, context: CallerContext) -> Booking:
        """Create a PENDING booking; the store re-checks capacity itself"""

        if request.idempotency_key:
            existing = self.db.query(models.Booking).filter(
                models.Booking.user_email == context.user_email,
                models.Booking.idempotency_key == request.idempotency_key
            ).first()
            if existing:
                logger.info("Booking %s already created for key %s", existing.id, request.idempotency_key)
                return self._to_schema(existing)

        capacity = self.query_capacity(request.activity_id, request.package_id, request.booking_date)
        if request.total_persons > capacity["availableSpots"]:
            raise AvailabilityConflict(capacity["availableSpots"], request.total_persons)

        stamp = self._next_stamp()
        record = models.Booking(
            id=f"TICK-{stamp}",
            order_number=f"ORD-{stamp}",
            user_email=context.user_email,
            activity_id=request.activity_id,
            package_id=request.package_id,
            package_name=request.package_name,
            title=request.activity_title,
            location=request.activity_location,
            booking_date=request.booking_date,
            booking_time=datetime.now(),
            status=BookingStatus.PENDING.value,
            base_price=request.price.subtotal,
            service_fee=request.price.service_fee,
            tax=request.price.tax,
            discount_amount=request.price.discount_amount,
            total_price=request.price.total,
            total_persons=request.total_persons,
            people_counts=request.people_counts.model_dump(by_alias=True),
            payment_method=request.payment_method,
            contact_email=request.contact_email,
            contact_phone=request.contact_phone,
            ticket_instructions=request.ticket_instructions or DEFAULT_INSTRUCTIONS,
            itinerary=request.itinerary or DEFAULT_ITINERARY.format(title=request.activity_title),
            cancellation_policy=request.cancellation_policy or self._ticket_generator().default_cancellation_policy(),
            idempotency_key=request.idempotency_key
        )

        # Issued once; later renders use this value verbatim
        record.qr_code_data = self._ticket_generator().derive_fallback_payload(self._to_schema(record))

        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)

        logger.info("Booking %s created for %s", record.id, context.user_email)
        return self._to_schema(record)

    def get_booking(self, booking_id: str, context: CallerContext) -> Booking:
        return self._to_schema(self._owned_record(booking_id, context))

    def find_booking(self, booking_id: str) -> Booking:
        return self._to_schema(self._record(booking_id))

    def list_bookings(
        self, context: CallerContext, status: Optional[BookingStatus] = None
    ) -> List[Booking]:
        query = self.db.query(models.Booking).filter(models.Booking.user_email == context.user_email)
        if status:
            query = query.filter(models.Booking.status == status.value)

        records = query.order_by(models.Booking.booking_time.desc(), models.Booking.id.desc()).all()
        return [self._to_schema(record) for record in records]

    def cancel_booking(self, booking_id: str, context: CallerContext) -> Booking:
        record = self._owned_record(booking_id, context)
        return self._set_status(record, BookingStatus.CANCELLED)

    def update_status(self, booking_id: str, status: BookingStatus) -> Booking:
        """Store-side transition, e.g. payment confirmation or venue check-in"""
        return self._set_status(self._record(booking_id), status)

    def _set_status(self, record: models.Booking, status: BookingStatus) -> Booking:
        assert_transition(BookingStatus(record.status), status)

        record.status = status.value
        self.db.commit()
        self.db.refresh(record)

        logger.info("Booking %s moved to %s", record.id, status.value)
        return self._to_schema(record)

    def _record(self, booking_id: str) -> models.Booking:
        record = self.db.get(models.Booking, booking_id)
        if not record:
            raise BookingNotFound(booking_id)
        return record

    def _owned_record(self, booking_id: str, context: CallerContext) -> models.Booking:
        record = self._record(booking_id)
        if record.user_email != context.user_email:
            raise AccessDenied()
        return record

    def _next_stamp(self) -> int:
        """Millisecond timestamp not yet used as a booking id"""
        stamp = int(time.time() * 1000)
        while self.db.get(models.Booking, f"TICK-{stamp}") is not None:
            stamp += 1
        return stamp

    @staticmethod
    def _ticket_generator():
        from src.bookings.ticket_service import TicketArtifactGenerator
        return TicketArtifactGenerator()

    @staticmethod
    def _to_schema(record: models.Booking) -> Booking:
        price = None
        if None not in (record.base_price, record.service_fee, record.tax, record.total_price):
            price = PriceBreakdown(
                subtotal=record.base_price,
                service_fee=record.service_fee,
                tax=record.tax,
                discount_amount=record.discount_amount or 0.0,
                total=record.total_price
            )

        return Booking(
            id=record.id,
            order_number=record.order_number,
            activity_id=record.activity_id,
            package_id=record.package_id,
            package_name=record.package_name,
            title=record.title,
            location=record.location or "",
            booking_date=record.booking_date,
            booking_time=record.booking_time,
            status=BookingStatus(record.status or BookingStatus.PENDING.value),
            price=price,
            total_price=record.total_price,
            people_counts=HeadcountSelection(**(record.people_counts or {})),
            total_persons=record.total_persons or 0,
            payment_method=record.payment_method,
            contact_email=record.contact_email,
            contact_phone=record.contact_phone,
            ticket_instructions=record.ticket_instructions,
            itinerary=record.itinerary,
            cancellation_policy=record.cancellation_policy,
            qr_code_data=record.qr_code_data,
            user_email=record.user_email
        )
