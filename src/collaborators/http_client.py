"""HTTP client for the remote travel API.

Implements the capacity, offer and booking-store contracts against the
travel authority's REST endpoints. Responses may arrive bare or wrapped in
the API's ``{success, message, data}`` envelope.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from src.bookings.schemas import Booking, BookingStatus, CallerContext, ReservationRequest
from src.collaborators.base import BookingStore, CapacitySource, OfferSource
from src.config import settings
from src.exceptions import (
    AccessDenied, AvailabilityConflict, BookingNotFound, TransientCollaboratorError,
    ValidationError,
)
from src.pricing.schemas import HeadcountSelection, PriceBreakdown

logger = logging.getLogger(__name__)


class TravelApiClient(CapacitySource, OfferSource, BookingStore):
    """Remote collaborator backed by the travel API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.TRAVEL_API_BASE_URL or "").rstrip("/")
        self.timeout = timeout if timeout is not None else settings.TRAVEL_API_TIMEOUT
        self._transport = transport
        self._http_client: Optional[httpx.Client] = None

    @property
    def http_client(self) -> httpx.Client:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http_client

    def close(self) -> None:
        """Close HTTP client."""
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    # ==================== TRANSPORT ====================

    def _request(
        self,
        service: str,
        method: str,
        path: str,
        context: Optional[CallerContext] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        if context is not None:
            headers["X-User-Email"] = context.user_email
            if context.token:
                headers["Authorization"] = f"Bearer {context.token}"

        try:
            response = self.http_client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("%s request %s %s timed out", service, method, path)
            raise TransientCollaboratorError(service, "request timed out") from e
        except httpx.TransportError as e:
            logger.warning("%s request %s %s failed: %s", service, method, path, e)
            raise TransientCollaboratorError(service, str(e)) from e

        if response.status_code >= 500:
            logger.warning("%s request %s %s returned %s", service, method, path, response.status_code)
            raise TransientCollaboratorError(service, f"HTTP {response.status_code}")

        return response

    @staticmethod
    def _body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {"data": body}

    @classmethod
    def _data(cls, response: httpx.Response) -> Any:
        body = cls._body(response)
        if "data" in body and ("success" in body or "message" in body or len(body) == 1):
            return body["data"]
        return body

    @classmethod
    def _raise_for_booking_status(cls, response: httpx.Response, booking_id: str = "") -> None:
        if response.status_code == 404:
            raise BookingNotFound(booking_id)
        if response.status_code in (401, 403):
            raise AccessDenied(cls._body(response).get("message") or "Access denied")
        if response.status_code in (400, 422):
            raise ValidationError(cls._body(response).get("message") or "Invalid booking request")

    # ==================== CAPACITY ====================

    def query_capacity(self, activity_id: int, package_id: int, date: str) -> Dict[str, Any]:
        response = self._request(
            "capacity", "POST", "/availability/check",
            json={"activityId": activity_id, "packageId": package_id, "date": date},
        )
        if response.status_code >= 400:
            raise TransientCollaboratorError(
                "capacity", self._body(response).get("message") or f"HTTP {response.status_code}"
            )
        return self._data(response) or {}

    # ==================== OFFERS ====================

    def query_offer(self, activity_id: int, package_id: int) -> Dict[str, Any]:
        response = self._request(
            "offer", "GET", "/offers/check",
            params={"activityId": activity_id, "packageId": package_id},
        )
        if response.status_code == 404:
            return {"hasOffer": False, "discountPercentage": 0}
        if response.status_code >= 400:
            raise TransientCollaboratorError(
                "offer", self._body(response).get("message") or f"HTTP {response.status_code}"
            )

        data = self._data(response) or {}
        if "hasOffer" in data:
            return data
        return {
            "hasOffer": data.get("discountPercentage") is not None,
            "discountPercentage": data.get("discountPercentage") or 0,
            "offerTitle": data.get("title"),
        }

    # ==================== BOOKINGS ====================

    def create_reservation(self, request: ReservationRequest, context: CallerContext) -> Booking:
        payload = {
            "activityId": request.activity_id,
            "activityTitle": request.activity_title,
            "activityLocation": request.activity_location,
            "image": request.image,
            "description": request.description,
            "bookingDate": request.booking_date,
            "packageId": request.package_id,
            "packageName": request.package_name,
            "basePrice": request.price.subtotal,
            "serviceFee": request.price.service_fee,
            "tax": request.price.tax,
            "totalPrice": request.price.total,
            "totalPersons": request.total_persons,
            "paymentMethod": request.payment_method,
            "peopleCounts": request.people_counts.model_dump(by_alias=True),
            "contactEmail": request.contact_email,
            "contactPhone": request.contact_phone,
            "ticketInstructions": request.ticket_instructions,
            "itinerary": request.itinerary,
            "cancellationPolicy": request.cancellation_policy,
            "hasDiscount": request.offer.has_offer,
            "discountPercentage": request.offer.discount_percentage,
            "offerTitle": request.offer.title,
        }

        # Lets the store answer a retried create with the booking it already made
        headers = {"Idempotency-Key": request.idempotency_key} if request.idempotency_key else {}
        response = self._request(
            "booking store", "POST", "/bookings", context, json=payload, headers=headers
        )
        if response.status_code == 409:
            body = self._body(response)
            raise AvailabilityConflict(int(body.get("availableSpots", 0)), request.total_persons)
        self._raise_for_booking_status(response)

        return self._to_booking(self._data(response))

    def get_booking(self, booking_id: str, context: CallerContext) -> Booking:
        response = self._request("booking store", "GET", f"/bookings/{booking_id}", context)
        self._raise_for_booking_status(response, booking_id)
        return self._to_booking(self._data(response))

    def find_booking(self, booking_id: str) -> Booking:
        response = self._request("booking store", "GET", f"/bookings/{booking_id}")
        self._raise_for_booking_status(response, booking_id)
        return self._to_booking(self._data(response))

    def list_bookings(
        self, context: CallerContext, status: Optional[BookingStatus] = None
    ) -> List[Booking]:
        params = {"status": status.value} if status else {}
        response = self._request("booking store", "GET", "/bookings", context, params=params)
        self._raise_for_booking_status(response)
        return [self._to_booking(item) for item in (self._data(response) or [])]

    def cancel_booking(self, booking_id: str, context: CallerContext) -> Booking:
        response = self._request("booking store", "PUT", f"/bookings/{booking_id}/cancel", context)
        self._raise_for_booking_status(response, booking_id)

        data = self._data(response)
        if isinstance(data, dict) and data.get("id"):
            return self._to_booking(data)
        return self.get_booking(booking_id, context)

    @staticmethod
    def _to_booking(data: Dict[str, Any]) -> Booking:
        """Map the API's camelCase booking record"""

        base, fee, tax, total = (
            data.get("basePrice"), data.get("serviceFee"), data.get("tax"), data.get("totalPrice")
        )
        price = None
        if None not in (base, fee, tax, total):
            price = PriceBreakdown(
                subtotal=base,
                service_fee=fee,
                tax=tax,
                discount_amount=data.get("discountAmount", max(base + fee + tax - total, 0.0)),
                total=total,
            )

        booking_time = data.get("bookingTime")
        if isinstance(booking_time, str):
            try:
                booking_time = datetime.fromisoformat(booking_time.replace("Z", "+00:00"))
            except ValueError:
                logger.warning("Booking %s has unreadable bookingTime %r", data.get("id"), booking_time)
                booking_time = None

        return Booking(
            id=data["id"],
            order_number=data.get("orderNumber"),
            activity_id=data.get("activityId") or 0,
            package_id=data.get("packageId"),
            package_name=data.get("packageName"),
            title=data.get("title") or "",
            location=data.get("location") or "",
            image=data.get("image"),
            booking_date=data["bookingDate"],
            booking_time=booking_time,
            status=BookingStatus(str(data.get("status", "PENDING")).upper()),
            price=price,
            total_price=total,
            people_counts=HeadcountSelection(**(data.get("peopleCounts") or {})),
            total_persons=data.get("totalPersons") or 0,
            payment_method=data.get("paymentMethod"),
            contact_email=data.get("contactEmail"),
            contact_phone=data.get("contactPhone"),
            ticket_instructions=data.get("ticketInstructions"),
            itinerary=data.get("itinerary"),
            cancellation_policy=data.get("cancellationPolicy"),
            qr_code_data=data.get("qrCodeData"),
            user_email=data.get("userEmail"),
        )
