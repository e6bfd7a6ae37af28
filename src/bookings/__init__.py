"""
Booking & Ticketing Module

This module provides the traveler-facing booking flow for activity packages.
It includes:

- Quotes priced with the active offer for a package
- Date selection with informational capacity checks
- Checkout with an authoritative capacity re-check before submission
- Booking lifecycle rules and cancellation eligibility
- Ticket scan payloads, printable PDF tickets and venue verification

Key Components:
- checkout_service.py: Quote, date selection and reservation submission
- lifecycle.py: Status transitions, cancellation window and status counts
- ticket_service.py: Scan payload derivation, QR/PDF rendering and verification
- router.py: FastAPI endpoints for bookings and tickets
- schemas.py: Pydantic models for booking and ticket data structures

The router is imported from src.bookings.router by the application.
"""

from .checkout_service import CheckoutService
from .lifecycle import BookingLifecycle, BOOKING_TRANSITIONS, CANCELLABLE_STATUSES
from .ticket_service import TicketArtifactGenerator
from .schemas import (
    BookingStatus, Booking, CallerContext, CheckoutRequest, ReservationRequest,
    CancellationEligibility, BookingStatusCounts, TicketView, RenderedTicket,
    QRVerificationRequest, QRVerificationResponse
)

__all__ = [
    "CheckoutService",
    "BookingLifecycle",
    "BOOKING_TRANSITIONS",
    "CANCELLABLE_STATUSES",
    "TicketArtifactGenerator",
    "BookingStatus",
    "Booking",
    "CallerContext",
    "CheckoutRequest",
    "ReservationRequest",
    "CancellationEligibility",
    "BookingStatusCounts",
    "TicketView",
    "RenderedTicket",
    "QRVerificationRequest",
    "QRVerificationResponse"
]
