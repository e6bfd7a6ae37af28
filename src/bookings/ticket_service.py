from typing import List, Dict, Optional, Any
from datetime import datetime, timedelta, timezone
from io import BytesIO
from xml.sax.saxutils import escape
import json
import logging

import qrcode
from qrcode import constants
from PIL import Image

from src.bookings.schemas import (
    Booking, BookingStatus, TicketSection, TicketView, RenderedTicket,
    AuthoritativePayload, DerivedPayload, PayloadSource, QRVerificationResponse
)
from src.bookings.lifecycle import parse_travel_date
from src.pricing.price_calculator import PriceCalculator
from src.pricing.schemas import PriceBreakdown, CATEGORY_KEYS, CATEGORY_LABELS, to_money
from src.config import settings
from src.exceptions import DocumentRenderError, TicketVerificationError, ValidationError

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

PENDING_NOTICE = (
    "Awaiting confirmation. Your scan code will be issued once the booking is confirmed."
)
CANCELLED_NOTICE = "This booking has been cancelled. No scan code is issued."
COMPLETED_NOTICE = "This booking has been completed. The scan code is no longer active."

class TicketArtifactGenerator:
    """Derives ticket verification payloads and renders printable tickets"""

    QR_SIZE = 300
    QR_BORDER = 4

    def __init__(
        self,
        price_calculator: Optional[PriceCalculator] = None,
        brand: Optional[str] = None,
        support_email: Optional[str] = None,
        support_phone: Optional[str] = None,
        currency_label: Optional[str] = None,
        cancellation_window_days: Optional[int] = None
    ):
        self.price_calculator = price_calculator or PriceCalculator()
        self.brand = brand or settings.TICKET_BRAND
        self.support_email = support_email or settings.SUPPORT_EMAIL
        self.support_phone = support_phone or settings.SUPPORT_PHONE
        self.currency_label = currency_label or settings.CURRENCY_LABEL
        self.cancellation_window_days = (
            cancellation_window_days if cancellation_window_days is not None
            else settings.CANCELLATION_WINDOW_DAYS
        )

    # ------------------------------------------------------------------
    # Scan payload
    # ------------------------------------------------------------------

    @staticmethod
    def resolve_payload_source(booking: Booking) -> PayloadSource:
        """The store's payload wins whenever it has issued one"""
        if booking.qr_code_data:
            return AuthoritativePayload(value=booking.qr_code_data)
        return DerivedPayload(booking=booking)

    def payload_text(self, source: PayloadSource) -> str:
        if isinstance(source, AuthoritativePayload):
            return source.value
        return self.derive_fallback_payload(source.booking)

    def derive_payload(self, booking: Booking) -> str:
        """Scan payload for a booking"""
        return self.payload_text(self.resolve_payload_source(booking))

    @staticmethod
    def verification_code(booking: Booking) -> str:
        travel_date = parse_travel_date(booking.booking_date)
        epoch_ms = (travel_date - EPOCH) // timedelta(milliseconds=1)
        return f"VER-{booking.id}-{epoch_ms}"

    def derive_fallback_payload(self, booking: Booking) -> str:
        """Deterministic payload built from the booking snapshot"""

        qr_data = {
            "ticketId": booking.id,
            "eventTitle": booking.title,
            "date": booking.booking_date,
            "persons": booking.party_size,
            "orderNumber": booking.order_number,
            "status": booking.status.value,
            "verificationCode": self.verification_code(booking)
        }

        return json.dumps(qr_data, separators=(',', ':'), ensure_ascii=False)

    def ticket_view(self, booking: Booking) -> TicketView:
        """What the traveler's ticket screen may show for this snapshot"""

        source = self.resolve_payload_source(booking)
        shown = booking.status == BookingStatus.CONFIRMED

        return TicketView(
            booking_id=booking.id,
            status=booking.status,
            scan_code_shown=shown,
            payload=self.payload_text(source) if shown else None,
            payload_source=source.kind,
            notice=self._status_notice(booking.status)
        )

    # ------------------------------------------------------------------
    # Verification at the venue
    # ------------------------------------------------------------------

    @staticmethod
    def parse_scanned_payload(scanned: str) -> Dict[str, Any]:
        """Parse a scanned payload and check its required fields"""

        if not scanned or not scanned.strip():
            raise TicketVerificationError("QR code data is empty")

        try:
            data = json.loads(scanned)
        except json.JSONDecodeError:
            raise TicketVerificationError("Invalid QR code format")

        if not isinstance(data, dict):
            raise TicketVerificationError("Invalid QR code format")

        if not data.get("ticketId") or not data.get("verificationCode"):
            raise TicketVerificationError("Invalid QR code format - missing required fields")

        return data

    def verify_payload(self, scanned: str, booking: Booking) -> QRVerificationResponse:
        """Check a scanned payload against the booking it names"""

        data = self.parse_scanned_payload(scanned)

        if data["ticketId"] != booking.id:
            raise TicketVerificationError("QR code does not belong to this booking")

        source = self.resolve_payload_source(booking)
        if isinstance(source, AuthoritativePayload):
            expected_code = self._issued_verification_code(source.value)
            matches = (
                data["verificationCode"] == expected_code if expected_code is not None
                else scanned.strip() == source.value.strip()
            )
        else:
            matches = data["verificationCode"] == self.verification_code(booking)
        if not matches:
            raise TicketVerificationError("QR code verification code does not match booking")

        checks = [
            ("eventTitle", booking.title, "event title"),
            ("date", booking.booking_date, "date"),
            ("persons", booking.party_size, "person count"),
        ]
        if booking.order_number is not None:
            checks.append(("orderNumber", booking.order_number, "order number"))

        verified = ["ticketId", "verificationCode"]
        for key, value, label in checks:
            if data.get(key) != value:
                raise TicketVerificationError(f"QR code {label} does not match booking")
            verified.append(key)

        if booking.status == BookingStatus.CANCELLED:
            raise TicketVerificationError("This ticket has been cancelled and is not valid")

        logger.info("QR code verified for booking %s (status %s)", booking.id, booking.status.value)

        return QRVerificationResponse(
            is_valid=True,
            booking=booking,
            verified_fields=verified,
            message=f"Ticket verified successfully (status: {booking.status.value})"
        )

    # ------------------------------------------------------------------
    # Document rendering
    # ------------------------------------------------------------------

    def generate_qr_code_image(self, payload: str) -> bytes:
        """Render a payload as a PNG QR code"""

        try:
            qr = qrcode.QRCode(
                version=1,
                error_correction=constants.ERROR_CORRECT_M,
                box_size=10,
                border=self.QR_BORDER,
            )
            qr.add_data(payload)
            qr.make(fit=True)

            qr_image = qr.make_image(fill_color="black", back_color="white")
            qr_image = qr_image.get_image() if hasattr(qr_image, "get_image") else qr_image
            qr_image = qr_image.resize((self.QR_SIZE, self.QR_SIZE), Image.LANCZOS)

            buffer = BytesIO()
            qr_image.save(buffer, format="PNG")
            return buffer.getvalue()
        except Exception as e:
            raise DocumentRenderError(f"QR code generation failed: {e}") from e

    def display_breakdown(self, booking: Booking) -> Optional[PriceBreakdown]:
        """The stored breakdown, or the legacy split of a single price"""
        if booking.price is not None:
            return booking.price
        if booking.total_price is not None:
            return self.price_calculator.reconstruct_legacy_breakdown(booking.total_price)
        return None

    def default_cancellation_policy(self) -> str:
        days = self.cancellation_window_days
        return (
            f"Free cancellation up to {days} days before the scheduled activity. "
            f"Bookings cannot be cancelled within {days} days of the activity date. "
            "No-shows will not receive any refund."
        )

    def build_sections(self, booking: Booking, scan_state: str) -> List[TicketSection]:
        """Ticket content in display order"""

        sections = [
            TicketSection(
                heading="Ticket",
                rows=[
                    ["Title:", booking.title],
                    ["Location:", booking.location or "N/A"],
                    ["Status:", booking.status.value],
                ]
            )
        ]

        # Booking meta
        persons = booking.party_size
        meta_rows = [
            ["Booking ID:", booking.id],
            ["Order Number:", booking.order_number or "N/A"],
            ["Booked On:", self._format_timestamp(booking.booking_time)],
            ["Travel Date:", self._format_travel_date(booking.booking_date)],
            ["Travelers:", f"{persons} {'Persons' if persons != 1 else 'Person'}"],
        ]
        counts = booking.people_counts.as_counts()
        for key in CATEGORY_KEYS:
            if counts[key] > 0:
                meta_rows.append([f"{CATEGORY_LABELS[key]}:", str(counts[key])])
        sections.append(TicketSection(heading="Booking Information", rows=meta_rows))

        sections.append(TicketSection(
            heading="Payment",
            rows=[["Payment Method:", booking.payment_method or "N/A"]]
        ))

        # Price, exactly as stored
        breakdown = self.display_breakdown(booking)
        if breakdown is None:
            price_rows = [["Total Amount:", "N/A"]]
        else:
            price_rows = [
                ["Base Price:", self._money(breakdown.subtotal)],
                ["Service Fee:", self._money(breakdown.service_fee)],
                ["Taxes:", self._money(breakdown.tax)],
            ]
            if breakdown.discount_amount > 0:
                price_rows.append(["Discount:", f"- {self._money(breakdown.discount_amount)}"])
            price_rows.append(["Total Amount:", self._money(breakdown.total)])
        sections.append(TicketSection(heading="Price Details", rows=price_rows))

        scan_rows = {
            "active": [["Scan this code at the venue"]],
            "error": [["QR CODE ERROR"], ["Please show your booking ID at the venue"]],
            "pending": [[PENDING_NOTICE]],
            "cancelled": [[CANCELLED_NOTICE]],
            "completed": [[COMPLETED_NOTICE]],
        }[scan_state]
        sections.append(TicketSection(
            heading="Ticket QR Code",
            rows=scan_rows,
            extra={"state": scan_state}
        ))

        if booking.ticket_instructions:
            sections.append(TicketSection(
                heading="Important Instructions",
                rows=[[booking.ticket_instructions]]
            ))
        if booking.itinerary:
            sections.append(TicketSection(heading="Itinerary", rows=[[booking.itinerary]]))

        sections.append(TicketSection(
            heading="Cancellation Policy",
            rows=[[booking.cancellation_policy or self.default_cancellation_policy()]]
        ))

        sections.append(TicketSection(
            heading="Contact Information",
            rows=[
                ["Email:", booking.contact_email or self.support_email],
                ["Phone:", booking.contact_phone or self.support_phone],
            ]
        ))

        return sections

    def render(self, booking: Booking) -> RenderedTicket:
        """Render the printable ticket for a booking snapshot"""

        shown = booking.status == BookingStatus.CONFIRMED
        qr_png = None
        qr_error = False

        if shown:
            try:
                payload = self.payload_text(self.resolve_payload_source(booking))
                qr_png = self.generate_qr_code_image(payload)
                scan_state = "active"
            except (DocumentRenderError, ValidationError) as e:
                logger.error("Ticket %s rendered without QR code: %s", booking.id, e)
                qr_error = True
                scan_state = "error"
        else:
            scan_state = booking.status.value.lower()

        sections = self.build_sections(booking, scan_state)
        pdf = self._build_pdf(booking, sections, qr_png)

        return RenderedTicket(
            booking_id=booking.id,
            filename=f"ticket-{booking.id}.pdf",
            pdf=pdf,
            sections=sections,
            scan_code_shown=shown,
            qr_error=qr_error,
            notice=self._status_notice(booking.status)
        )

    def _build_pdf(
        self,
        booking: Booking,
        sections: List[TicketSection],
        qr_png: Optional[bytes]
    ) -> bytes:
        """Lay the sections out as an A4 PDF"""

        from reportlab.lib.pagesizes import A4
        from reportlab.lib import colors
        from reportlab.lib.styles import getSampleStyleSheet
        from reportlab.platypus import (
            SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, Image as PdfImage
        )

        buffer = BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=A4, title=f"Ticket {booking.id}")
        styles = getSampleStyleSheet()
        story = []

        # Header
        story.append(Paragraph(escape(self.brand), styles['Title']))
        story.append(Paragraph("E-Ticket Confirmation", styles['Heading3']))
        story.append(Spacer(1, 12))

        for section in sections:
            story.append(Paragraph(escape(section.heading), styles['Heading2']))
            story.append(Spacer(1, 6))

            if section.heading == "Ticket QR Code":
                state = section.extra.get("state")
                if state == "active" and qr_png:
                    story.append(PdfImage(BytesIO(qr_png), width=120, height=120))
                    story.append(Paragraph(escape(section.rows[0][0]), styles['Normal']))
                elif state == "error":
                    placeholder = Table([["QR CODE"], ["ERROR"]], colWidths=[120], rowHeights=[60, 60])
                    placeholder.setStyle(TableStyle([
                        ('BOX', (0, 0), (-1, -1), 1, colors.black),
                        ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
                        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
                        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
                    ]))
                    story.append(placeholder)
                    story.append(Paragraph(escape(section.rows[1][0]), styles['Normal']))
                else:
                    story.append(Paragraph(escape(section.rows[0][0]), styles['Italic']))
                story.append(Spacer(1, 12))
                continue

            if all(len(row) == 1 for row in section.rows):
                for row in section.rows:
                    story.append(Paragraph(escape(row[0]).replace("\n", "<br/>"), styles['Normal']))
                story.append(Spacer(1, 12))
                continue

            table = Table(section.rows, colWidths=[120, 300])
            table.setStyle(TableStyle([
                ('BACKGROUND', (0, 0), (-1, -1), colors.whitesmoke),
                ('TEXTCOLOR', (0, 0), (-1, -1), colors.black),
                ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
                ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
                ('FONTNAME', (1, 0), (1, -1), 'Helvetica'),
                ('FONTSIZE', (0, 0), (-1, -1), 10),
                ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
            ]))
            story.append(table)
            story.append(Spacer(1, 12))

        story.append(Paragraph(f"Ticket ID: {escape(booking.id)}", styles['Italic']))

        doc.build(story)
        return buffer.getvalue()

    @staticmethod
    def _issued_verification_code(value: str) -> Optional[str]:
        # Store payloads are opaque; only JSON ones expose a code to compare
        try:
            issued = json.loads(value)
        except json.JSONDecodeError:
            return None
        return issued.get("verificationCode") if isinstance(issued, dict) else None

    @staticmethod
    def _status_notice(status: BookingStatus) -> Optional[str]:
        return {
            BookingStatus.PENDING: PENDING_NOTICE,
            BookingStatus.CANCELLED: CANCELLED_NOTICE,
            BookingStatus.COMPLETED: COMPLETED_NOTICE,
        }.get(status)

    def _money(self, value: float) -> str:
        return f"{self.currency_label} {to_money(value):,}"

    @staticmethod
    def _format_timestamp(value: Optional[datetime]) -> str:
        if value is None:
            return "N/A"
        return value.strftime("%B %d, %Y %H:%M")

    @staticmethod
    def _format_travel_date(value: str) -> str:
        try:
            return parse_travel_date(value).strftime("%B %d, %Y")
        except ValidationError:
            return value
