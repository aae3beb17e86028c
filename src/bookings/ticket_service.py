from typing import List, Dict, Tuple, Any
from datetime import datetime, timedelta
import base64
import json
import uuid
import qrcode
from qrcode import constants
from io import BytesIO

from src.bookings.schemas import BookingRecord, QRCodeRecord, UserRecord
from src.bookings.store import BookingStore, primary_user
from src.exceptions import InvalidRequestError
from src.health.governor import StoreSelector
from src.logger import setup_logger

logger = setup_logger(__name__)

PLACEHOLDER_QR_URL = "https://api.qrserver.com/v1/create-qr-code/?size=200x200&data={data}"


def generate_ticket_number() -> str:
    """Opaque, collision-resistant ticket code"""
    return str(uuid.uuid4())


def encode_payload(ticket_number: str, booking_id: str, pass_type: str, event_date) -> str:
    """Portable payload embedded in the QR image; verification can work without a store lookup"""
    if hasattr(event_date, "isoformat"):
        event_date = event_date.isoformat()
    return json.dumps({
        "ticketNumber": ticket_number,
        "bookingId": str(booking_id),
        "passType": pass_type,
        "eventDate": event_date,
    }, separators=(",", ":"))


def decode_payload(data: str) -> Dict[str, Any]:
    try:
        payload = json.loads(data)
    except (TypeError, ValueError):
        raise InvalidRequestError("QR payload is not valid JSON")
    if not isinstance(payload, dict) or not payload.get("ticketNumber"):
        raise InvalidRequestError("QR payload has no ticket number")
    return payload


def extract_ticket_code(raw: str) -> str:
    """Accept either a scanned JSON payload or a bare ticket code"""
    value = (raw or "").strip()
    if not value:
        raise InvalidRequestError("QR code data is required")
    if value.startswith("{"):
        return str(decode_payload(value)["ticketNumber"])
    return value


def generate_qr_png(data: str, box_size: int = 10, border: int = 4) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)

    image = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def generate_qr_data_url(data: str) -> str:
    encoded = base64.b64encode(generate_qr_png(data)).decode()
    return f"data:image/png;base64,{encoded}"


def placeholder_qr_url(ticket_number: str) -> str:
    return PLACEHOLDER_QR_URL.format(data=ticket_number)


class TicketService:
    """Mints QR tickets for confirmed bookings"""

    def __init__(self, selector: StoreSelector, expiry_days: int = 30, clock=datetime.now):
        self.selector = selector
        self.expiry_days = expiry_days
        self._clock = clock

    def render_qr_image(self, qr_data: str, ticket_number: str) -> str:
        """QR PNG as a data URL; a rendering failure degrades to the placeholder URL"""
        try:
            return generate_qr_data_url(qr_data)
        except Exception:
            logger.warning("QR rendering failed for ticket %s, using placeholder image", ticket_number,
                           exc_info=True)
            return placeholder_qr_url(ticket_number)

    def issue_tickets(
        self,
        store: BookingStore,
        booking: BookingRecord,
        users: List[UserRecord]
    ) -> Tuple[List[QRCodeRecord], bool]:
        """Create one unused QR record per ticket; bookings that already have tickets are not re-issued"""

        existing, mock = self.selector.run(store, "list_qr_codes", booking.id)
        if existing:
            return existing, mock

        holder = primary_user(users)
        expiry_date = self._clock() + timedelta(days=self.expiry_days)
        qr_codes = []

        for _ in range(booking.num_tickets):
            ticket_number = generate_ticket_number()
            qr_data = encode_payload(ticket_number, booking.id, booking.pass_type, booking.booking_date)
            qr, used_fallback = self.selector.run(
                store, "create_qr_code",
                booking.id,
                holder.id if holder else None,
                ticket_number,
                qr_data,
                self.render_qr_image(qr_data, ticket_number),
                expiry_date,
            )
            mock = mock or used_fallback
            qr_codes.append(qr)

        logger.info("Issued %d tickets for booking %s", len(qr_codes), booking.id)
        return qr_codes, mock

    def get_tickets(self, store: BookingStore, booking_id: str) -> Tuple[List[QRCodeRecord], bool]:
        return self.selector.run(store, "list_qr_codes", booking_id)
