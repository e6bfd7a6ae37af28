from fastapi import APIRouter, Depends, HTTPException, status, Query, Header, Response
from sqlalchemy.orm import Session
from typing import List, Optional, Dict, Tuple
from datetime import date, datetime

from src.config import settings
from src.database import get_db
from src.exceptions import BookingEngineError
from src.availability.schemas import DateSelectionResult
from src.bookings.schemas import (
    Booking, BookingStatus, BookingStatusCounts, CallerContext, CancellationEligibility,
    CheckoutRequest, QRVerificationRequest, QRVerificationResponse, TicketView
)
from src.bookings.checkout_service import CheckoutRegistry, CheckoutService
from src.bookings.lifecycle import BookingLifecycle
from src.bookings.ticket_service import TicketArtifactGenerator
from src.collaborators.http_client import TravelApiClient
from src.collaborators.sql_store import SqlBookingStore
from src.offers.offer_resolver import OfferResolver
from src.pricing.schemas import Offer, QuoteRequest, QuoteResponse

router = APIRouter()

# Process-wide state shared by per-request services
_api_client: Optional[TravelApiClient] = None
_checkout_registry = CheckoutRegistry()
_status_counts_cache: Dict[str, Tuple[BookingStatusCounts, datetime]] = {}

def _http_error(error: BookingEngineError) -> HTTPException:
    headers = {"Retry-After": "1"} if getattr(error, "retryable", False) else None
    return HTTPException(status_code=error.status_code, detail=error.detail, headers=headers)

# Dependencies
def get_today() -> date:
    return date.today()

def get_caller(
    x_user_email: str = Header(..., description="Email of the authenticated traveler"),
    x_session_id: Optional[str] = Header(None, description="Client checkout session"),
    authorization: Optional[str] = Header(None)
) -> CallerContext:
    """Caller identity taken from the request headers"""
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:]
    return CallerContext(user_email=x_user_email, token=token, session_id=x_session_id)

def get_store(db: Session = Depends(get_db), today: date = Depends(get_today)):
    """Remote travel API when configured, otherwise the local SQL store"""
    global _api_client

    if settings.uses_remote_store:
        if _api_client is None:
            _api_client = TravelApiClient()
        return _api_client
    return SqlBookingStore(db, today=lambda: today)

def close_api_client() -> None:
    global _api_client

    if _api_client is not None:
        _api_client.close()
        _api_client = None

def get_checkout_service(store=Depends(get_store), today: date = Depends(get_today)) -> CheckoutService:
    return CheckoutService(store, store, store, today=lambda: today, registry=_checkout_registry)

def get_lifecycle(store=Depends(get_store)) -> BookingLifecycle:
    return BookingLifecycle(store, counts_cache=_status_counts_cache)

def get_ticket_generator() -> TicketArtifactGenerator:
    return TicketArtifactGenerator()

# Quote & Availability Endpoints
@router.post("/quote", response_model=QuoteResponse)
def quote_package(
    request: QuoteRequest,
    checkout: CheckoutService = Depends(get_checkout_service)
):
    """Price a headcount selection with the active offer"""

    try:
        return checkout.quote(
            request.activity_id, request.package_id, request.headcounts, request.rate_card
        )
    except BookingEngineError as e:
        raise _http_error(e)

@router.get("/availability", response_model=DateSelectionResult)
def check_availability(
    activity_id: int = Query(..., description="Activity ID"),
    package_id: int = Query(..., description="Package ID"),
    booking_date: str = Query(..., alias="date", description="Travel date (YYYY-MM-DD)"),
    requested_count: Optional[int] = Query(None, ge=1, description="Number of travelers"),
    checkout: CheckoutService = Depends(get_checkout_service)
):
    """Informational capacity check for a selected date"""

    try:
        return checkout.select_date(activity_id, package_id, booking_date, requested_count)
    except BookingEngineError as e:
        raise _http_error(e)

@router.get("/offers", response_model=Offer)
def get_active_offer(
    activity_id: int = Query(..., description="Activity ID"),
    package_id: int = Query(..., description="Package ID"),
    store=Depends(get_store)
):
    """Active offer for an activity package"""

    try:
        return OfferResolver(store).resolve(activity_id, package_id)
    except BookingEngineError as e:
        raise _http_error(e)

# Booking Management Endpoints
@router.post("/checkout", response_model=Booking, status_code=status.HTTP_201_CREATED)
def checkout_booking(
    request: CheckoutRequest,
    caller: CallerContext = Depends(get_caller),
    checkout: CheckoutService = Depends(get_checkout_service),
    lifecycle: BookingLifecycle = Depends(get_lifecycle)
):
    """Re-check capacity and submit a reservation"""

    try:
        booking = checkout.submit(request, caller)
    except BookingEngineError as e:
        raise _http_error(e)

    lifecycle.invalidate_status_counts(caller)
    return booking

@router.get("", response_model=List[Booking])
def list_bookings(
    booking_status: Optional[BookingStatus] = Query(None, alias="status", description="Filter by status"),
    caller: CallerContext = Depends(get_caller),
    store=Depends(get_store)
):
    """List the caller's bookings, newest first"""

    try:
        return store.list_bookings(caller, booking_status)
    except BookingEngineError as e:
        raise _http_error(e)

@router.get("/status-counts", response_model=BookingStatusCounts)
def get_status_counts(
    caller: CallerContext = Depends(get_caller),
    lifecycle: BookingLifecycle = Depends(get_lifecycle)
):
    """Number of the caller's bookings per status"""

    try:
        return lifecycle.status_counts(caller)
    except BookingEngineError as e:
        raise _http_error(e)

@router.post("/verify-qr", response_model=QRVerificationResponse)
def verify_qr_code(
    request: QRVerificationRequest,
    store=Depends(get_store),
    generator: TicketArtifactGenerator = Depends(get_ticket_generator)
):
    """Verify a scanned ticket at the venue"""

    try:
        scanned = generator.parse_scanned_payload(request.qr_code_data)
        booking = store.find_booking(scanned["ticketId"])
        return generator.verify_payload(request.qr_code_data, booking)
    except BookingEngineError as e:
        raise _http_error(e)

@router.get("/{booking_id}", response_model=Booking)
def get_booking(
    booking_id: str,
    caller: CallerContext = Depends(get_caller),
    store=Depends(get_store)
):
    """Get booking details"""

    try:
        return store.get_booking(booking_id, caller)
    except BookingEngineError as e:
        raise _http_error(e)

@router.get("/{booking_id}/eligibility", response_model=CancellationEligibility)
def get_cancellation_eligibility(
    booking_id: str,
    caller: CallerContext = Depends(get_caller),
    store=Depends(get_store),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
    today: date = Depends(get_today)
):
    """Whether the booking can still be cancelled"""

    try:
        booking = store.get_booking(booking_id, caller)
        return lifecycle.eligibility(booking, today)
    except BookingEngineError as e:
        raise _http_error(e)

@router.post("/{booking_id}/cancel", response_model=Booking)
def cancel_booking(
    booking_id: str,
    caller: CallerContext = Depends(get_caller),
    store=Depends(get_store),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
    today: date = Depends(get_today)
):
    """Cancel a booking inside the cancellation window"""

    try:
        booking = store.get_booking(booking_id, caller)
        return lifecycle.cancel(booking, caller, today)
    except BookingEngineError as e:
        raise _http_error(e)

# Ticket Endpoints
@router.get("/{booking_id}/ticket", response_model=TicketView)
def get_ticket(
    booking_id: str,
    caller: CallerContext = Depends(get_caller),
    store=Depends(get_store),
    generator: TicketArtifactGenerator = Depends(get_ticket_generator)
):
    """Scan payload and its visibility for the booking"""

    try:
        booking = store.get_booking(booking_id, caller)
        return generator.ticket_view(booking)
    except BookingEngineError as e:
        raise _http_error(e)

@router.get("/{booking_id}/ticket.pdf")
def download_ticket_pdf(
    booking_id: str,
    caller: CallerContext = Depends(get_caller),
    store=Depends(get_store),
    generator: TicketArtifactGenerator = Depends(get_ticket_generator)
):
    """Download the printable ticket"""

    try:
        booking = store.get_booking(booking_id, caller)
        rendered = generator.render(booking)
    except BookingEngineError as e:
        raise _http_error(e)

    return Response(
        content=rendered.pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{rendered.filename}"'}
    )
