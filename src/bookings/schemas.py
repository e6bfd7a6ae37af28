from pydantic import BaseModel, Field, validator
from typing import List, Optional, Dict, Any, Literal, Union
from datetime import datetime
from enum import Enum

from src.pricing.schemas import HeadcountSelection, RateCard, Offer, PriceBreakdown
from src.exceptions import BookingEngineError

class BookingStatus(str, Enum):
    """Booking status enumeration"""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

class CallerContext(BaseModel):
    """Identity of the caller, passed explicitly to every store call"""
    user_email: str
    token: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def session_key(self) -> str:
        return self.session_id or self.user_email

# Booking Request Models
class CheckoutRequest(BaseModel):
    """Traveler's checkout submission"""
    activity_id: int
    activity_title: str
    activity_location: str
    image: Optional[str] = None
    description: Optional[str] = None
    booking_date: str
    package_id: int
    package_name: Optional[str] = None
    headcounts: HeadcountSelection
    rate_card: RateCard
    payment_method: str = "Card"
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    ticket_instructions: Optional[str] = None
    itinerary: Optional[str] = None
    cancellation_policy: Optional[str] = None
    idempotency_key: Optional[str] = None

    @validator('booking_date')
    def validate_booking_date(cls, v):
        from src.bookings.lifecycle import parse_travel_date
        try:
            parse_travel_date(v)
        except BookingEngineError as e:
            raise ValueError(e.detail)
        return v

class ReservationRequest(BaseModel):
    """Reservation-create request sent to the booking store"""
    activity_id: int
    activity_title: str
    activity_location: str
    image: Optional[str] = None
    description: Optional[str] = None
    booking_date: str
    package_id: int
    package_name: Optional[str] = None
    price: PriceBreakdown
    offer: Offer
    people_counts: HeadcountSelection
    total_persons: int
    payment_method: str
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    ticket_instructions: Optional[str] = None
    itinerary: Optional[str] = None
    cancellation_policy: Optional[str] = None
    idempotency_key: Optional[str] = None

# Booking Response Models
class Booking(BaseModel):
    """Booking record as held by the external store"""
    id: str
    order_number: Optional[str] = None
    activity_id: int
    package_id: Optional[int] = None
    package_name: Optional[str] = None
    title: str
    location: str = ""
    image: Optional[str] = None
    booking_date: str
    booking_time: Optional[datetime] = None
    status: BookingStatus
    price: Optional[PriceBreakdown] = None
    total_price: Optional[float] = None  # Legacy single price field
    people_counts: HeadcountSelection = Field(default_factory=HeadcountSelection)
    total_persons: int = 0
    payment_method: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    ticket_instructions: Optional[str] = None
    itinerary: Optional[str] = None
    cancellation_policy: Optional[str] = None
    qr_code_data: Optional[str] = None
    user_email: Optional[str] = None

    @property
    def party_size(self) -> int:
        return self.total_persons or self.people_counts.total

class CancellationEligibility(BaseModel):
    """Whether a booking may be cancelled today"""
    booking_id: str
    status: BookingStatus
    can_cancel: bool
    days_until_activity: int
    window_days: int
    reason: Optional[str] = None

class BookingStatusCounts(BaseModel):
    """Number of the caller's bookings per status"""
    counts: Dict[BookingStatus, int]
    total: int

# Ticket Models
class TicketView(BaseModel):
    """Scan code visibility for a booking"""
    booking_id: str
    status: BookingStatus
    scan_code_shown: bool
    payload: Optional[str] = None
    payload_source: str
    notice: Optional[str] = None

class QRVerificationRequest(BaseModel):
    """Scanned ticket payload presented at the venue"""
    qr_code_data: str

    @validator('qr_code_data')
    def validate_qr_code_data(cls, v):
        if not v or not v.strip():
            raise ValueError('QR code data is empty')
        return v

class QRVerificationResponse(BaseModel):
    """Result of verifying a scanned payload"""
    is_valid: bool
    booking: Booking
    verified_fields: List[str]
    message: str

class TicketSection(BaseModel):
    """One block of the rendered ticket document"""
    heading: str
    rows: List[List[str]] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict)

class AuthoritativePayload(BaseModel):
    """Scan payload issued by the booking store; used verbatim"""
    kind: Literal["authoritative"] = "authoritative"
    value: str

class DerivedPayload(BaseModel):
    """Scan payload derived locally from the booking snapshot"""
    kind: Literal["derived"] = "derived"
    booking: Booking

PayloadSource = Union[AuthoritativePayload, DerivedPayload]

class RenderedTicket(BaseModel):
    """Printable ticket document and what it shows"""
    booking_id: str
    filename: str
    pdf: bytes
    sections: List[TicketSection]
    scan_code_shown: bool
    qr_error: bool = False
    notice: Optional[str] = None
