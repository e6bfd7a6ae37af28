import json
import httpx
import pytest

from src.bookings.checkout_service import CheckoutService
from src.bookings.schemas import BookingStatus, CheckoutRequest, ReservationRequest
from src.collaborators.http_client import TravelApiClient
from src.exceptions import (
    AccessDenied, AvailabilityConflict, BookingNotFound, TransientCollaboratorError
)
from src.pricing.schemas import HeadcountSelection, Offer, PriceBreakdown, RateCard

BOOKING_JSON = {
    "id": "TICK-1753000000000",
    "orderNumber": "ORD-1753000000000",
    "activityId": 1,
    "packageId": 11,
    "packageName": "Standard Climb",
    "title": "Sigiriya Rock Fortress Climb",
    "location": "Sigiriya",
    "bookingDate": "2025-07-22",
    "bookingTime": "2025-07-01T09:30:00",
    "status": "CONFIRMED",
    "basePrice": 2700.0,
    "serviceFee": 135.0,
    "tax": 405.0,
    "totalPrice": 2970.0,
    "totalPersons": 3,
    "peopleCounts": {"foreignAdult": 2, "foreignKids": 1},
    "paymentMethod": "Card",
    "qrCodeData": "issued-by-store",
    "userEmail": "traveler@example.com",
}

def _client(handler):
    return TravelApiClient(
        base_url="https://travel.example.com/api",
        timeout=1.0,
        transport=httpx.MockTransport(handler)
    )

def test_capacity_unwraps_response_envelope():
    def handler(request):
        assert request.url.path == "/api/availability/check"
        assert json.loads(request.content) == {"activityId": 1, "packageId": 11, "date": "2025-07-22"}
        return httpx.Response(200, json={
            "success": True,
            "message": "Availability checked successfully",
            "data": {"available": True, "bookedCount": 8, "totalAvailability": 10, "availableSpots": 2},
        })

    capacity = _client(handler).query_capacity(1, 11, "2025-07-22")

    assert capacity["availableSpots"] == 2

@pytest.mark.parametrize("error", [
    httpx.ConnectError("connection refused"),
    httpx.ReadTimeout("timed out"),
])
def test_network_failures_are_transient(error):
    def handler(request):
        raise error

    with pytest.raises(TransientCollaboratorError) as exc:
        _client(handler).query_capacity(1, 11, "2025-07-22")

    assert exc.value.service == "capacity"

def test_server_error_is_transient():
    client = _client(lambda request: httpx.Response(502, text="Bad Gateway"))

    with pytest.raises(TransientCollaboratorError):
        client.query_offer(1, 11)

def test_offer_404_means_no_offer():
    offer = _client(lambda request: httpx.Response(404, json={"message": "No offer"})).query_offer(1, 11)

    assert offer["hasOffer"] is False

def test_offer_record_mapped_to_offer_answer():
    def handler(request):
        assert request.url.params["activityId"] == "1"
        assert request.url.params["packageId"] == "11"
        return httpx.Response(200, json={"data": {"title": "Early Bird", "discountPercentage": 10}})

    offer = _client(handler).query_offer(1, 11)

    assert offer == {"hasOffer": True, "discountPercentage": 10, "offerTitle": "Early Bird"}

def test_get_booking_sends_caller_identity(caller):
    def handler(request):
        assert request.headers["X-User-Email"] == caller.user_email
        assert request.headers["Authorization"] == "Bearer test-token"
        return httpx.Response(200, json={"success": True, "data": BOOKING_JSON})

    booking = _client(handler).get_booking("TICK-1753000000000", caller)

    assert booking.status == BookingStatus.CONFIRMED
    assert booking.qr_code_data == "issued-by-store"
    assert booking.people_counts.foreign_kids == 1
    assert booking.price.discount_amount == pytest.approx(270)

def test_booking_404_and_403(caller):
    with pytest.raises(BookingNotFound):
        _client(lambda request: httpx.Response(404)).get_booking("TICK-0", caller)

    with pytest.raises(AccessDenied):
        _client(lambda request: httpx.Response(403, json={"message": "Access denied"})).get_booking("TICK-0", caller)

def test_legacy_booking_without_breakdown(caller):
    legacy = {k: v for k, v in BOOKING_JSON.items() if k not in ("basePrice", "serviceFee", "tax")}

    booking = _client(lambda request: httpx.Response(200, json=legacy)).get_booking("TICK-1", caller)

    assert booking.price is None
    assert booking.total_price == 2970.0

def test_create_reservation_conflict(caller):
    request = ReservationRequest(
        activity_id=1,
        activity_title="Sigiriya Rock Fortress Climb",
        activity_location="Sigiriya",
        booking_date="2025-07-22",
        package_id=11,
        price=PriceBreakdown(subtotal=2700, service_fee=135, tax=405, total=3240),
        offer=Offer.none(),
        people_counts=HeadcountSelection(foreign_adult=3),
        total_persons=3,
        payment_method="Card"
    )

    def handler(request):
        body = json.loads(request.content)
        assert body["peopleCounts"]["foreignAdult"] == 3
        assert body["totalPrice"] == 3240
        return httpx.Response(409, json={"availableSpots": 1})

    with pytest.raises(AvailabilityConflict) as exc:
        _client(handler).create_reservation(request, caller)

    assert exc.value.available_spots == 1
    assert exc.value.requested == 3

def test_cancel_returns_updated_booking(caller):
    def handler(request):
        assert request.method == "PUT"
        assert request.url.path.endswith("/bookings/TICK-1753000000000/cancel")
        return httpx.Response(200, json={"data": {**BOOKING_JSON, "status": "CANCELLED"}})

    booking = _client(handler).cancel_booking("TICK-1753000000000", caller)

    assert booking.status == BookingStatus.CANCELLED

def test_retried_checkout_reuses_booking_created_before_timeout(fake, today, caller):
    created = {}
    keys_sent = []

    def handler(request):
        key = request.headers.get("Idempotency-Key")
        keys_sent.append(key)
        if key in created:
            return httpx.Response(200, json={"success": True, "data": created[key]})
        created[key] = BOOKING_JSON
        # Booking stored, reply lost
        raise httpx.ReadTimeout("timed out")

    service = CheckoutService(_client(handler), fake, fake, today=lambda: today)
    request = CheckoutRequest(
        activity_id=1,
        activity_title="Sigiriya Rock Fortress Climb",
        activity_location="Sigiriya",
        booking_date="2025-07-22",
        package_id=11,
        headcounts=HeadcountSelection(foreign_adult=2, foreign_kids=1),
        rate_card=RateCard(base_rate=1000),
        idempotency_key="key-1"
    )

    with pytest.raises(TransientCollaboratorError):
        service.submit(request, caller)
    booking = service.submit(request, caller)

    assert keys_sent == ["key-1", "key-1"]
    assert len(created) == 1
    assert booking.id == BOOKING_JSON["id"]

def test_no_idempotency_header_without_key(caller):
    def handler(request):
        assert "Idempotency-Key" not in request.headers
        return httpx.Response(201, json={"data": {**BOOKING_JSON, "status": "PENDING"}})

    request = ReservationRequest(
        activity_id=1,
        activity_title="Sigiriya Rock Fortress Climb",
        activity_location="Sigiriya",
        booking_date="2025-07-22",
        package_id=11,
        price=PriceBreakdown(subtotal=2700, service_fee=135, tax=405, total=3240),
        offer=Offer.none(),
        people_counts=HeadcountSelection(foreign_adult=3),
        total_persons=3,
        payment_method="Card"
    )

    assert _client(handler).create_reservation(request, caller).status == BookingStatus.PENDING

def test_unreadable_booking_time_is_dropped(caller):
    data = {**BOOKING_JSON, "bookingTime": "yesterday"}

    booking = _client(lambda request: httpx.Response(200, json=data)).get_booking("TICK-1", caller)

    assert booking.booking_time is None
