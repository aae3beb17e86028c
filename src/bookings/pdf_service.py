"""
Single-page PDF entry tickets.

The QR image is taken from a data URL, downloaded from an http(s) URL, or
regenerated locally from the ticket number. If none of those yield a usable
image the ticket carries the ticket number as text instead: QR problems
never stop a PDF from being produced.
"""

import base64
import binascii
from datetime import date, datetime
from io import BytesIO
from typing import Optional, Union

import requests
from pydantic import BaseModel
from reportlab.lib import colors
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from src.bookings.ticket_service import generate_qr_png
from src.config import settings
from src.logger import setup_logger

logger = setup_logger(__name__)

PAGE_WIDTH = 400
PAGE_HEIGHT = 600
ACCENT = colors.HexColor("#ff6b35")
QR_SIZE = 140


class TicketPdfData(BaseModel):
    name: Optional[str] = None
    event_date: Optional[Union[datetime, date, str]] = None
    pass_type: Optional[str] = None
    qr_code: Optional[str] = None
    booking_id: Optional[str] = None
    ticket_number: Optional[str] = None


def _format_date(value) -> str:
    if isinstance(value, (date, datetime)):
        return value.strftime("%d/%m/%Y")
    if value:
        return str(value)
    return datetime.now().strftime("%d/%m/%Y")


def _image_reader(data: bytes) -> Optional[ImageReader]:
    try:
        return ImageReader(BytesIO(data))
    except Exception as exc:  # reportlab re-raises PIL decoding errors with varying types
        logger.warning("QR image data is not a readable image: %s", exc)
        return None


def _load_qr_image(qr_code: Optional[str], timeout: float) -> Optional[ImageReader]:
    if not qr_code:
        return None
    try:
        if qr_code.startswith("data:image"):
            return _image_reader(base64.b64decode(qr_code.split(",", 1)[1]))
        if qr_code.startswith("http"):
            response = requests.get(qr_code, timeout=timeout)
            response.raise_for_status()
            return _image_reader(response.content)
    except (IndexError, binascii.Error, requests.RequestException) as exc:
        logger.warning("Could not load QR image for PDF: %s", exc)
    return None


def _placeholder_qr(data: str) -> Optional[ImageReader]:
    try:
        return _image_reader(generate_qr_png(data))
    except Exception:
        logger.warning("Could not generate placeholder QR for PDF", exc_info=True)
        return None


def _draw_qr(pdf: canvas.Canvas, ticket: TicketPdfData, x: float, y: float, timeout: float) -> None:
    fallback_data = ticket.ticket_number or ticket.booking_id or f"TICKET-{int(datetime.now().timestamp())}"
    for image in (_load_qr_image(ticket.qr_code, timeout), _placeholder_qr(fallback_data)):
        if image is None:
            continue
        try:
            pdf.drawImage(image, x, y, width=QR_SIZE, height=QR_SIZE)
            return
        except Exception as exc:
            logger.warning("QR image unusable in PDF: %s", exc)

    # text fallback
    pdf.setFillColor(colors.black)
    pdf.setFont("Helvetica-Bold", 10)
    pdf.drawCentredString(PAGE_WIDTH / 2, y + QR_SIZE / 2 + 6, "QR CODE UNAVAILABLE")
    pdf.setFont("Helvetica", 8)
    pdf.drawCentredString(PAGE_WIDTH / 2, y + QR_SIZE / 2 - 8, f"Ticket: {fallback_data}")


def render_ticket_pdf(ticket: TicketPdfData, timeout: Optional[float] = None) -> bytes:
    """Render one ticket on a fixed 400x600 page and return the PDF bytes"""
    timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
    name = (ticket.name or "Guest").upper()
    pass_type = (ticket.pass_type or "Standard").upper()

    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=(PAGE_WIDTH, PAGE_HEIGHT))
    pdf.setTitle(f"{settings.EVENT_NAME} ticket")

    # Border and header
    pdf.setStrokeColor(ACCENT)
    pdf.setLineWidth(3)
    pdf.roundRect(15, 15, PAGE_WIDTH - 30, PAGE_HEIGHT - 30, 10)
    pdf.setFillColor(ACCENT)
    pdf.rect(25, PAGE_HEIGHT - 105, PAGE_WIDTH - 50, 80, stroke=0, fill=1)
    pdf.setFillColor(colors.white)
    pdf.setFont("Helvetica-Bold", 18)
    pdf.drawCentredString(PAGE_WIDTH / 2, PAGE_HEIGHT - 60, settings.EVENT_NAME.upper())
    pdf.setFont("Helvetica", 12)
    pdf.drawCentredString(PAGE_WIDTH / 2, PAGE_HEIGHT - 85, "Official Entry Ticket")

    # Guest details
    y = PAGE_HEIGHT - 140
    for label, value, size in (
        ("GUEST NAME", name, 16),
        ("EVENT DATE", _format_date(ticket.event_date), 14),
        ("PASS TYPE", pass_type, 16),
    ):
        pdf.setFillColor(colors.HexColor("#333333"))
        pdf.setFont("Helvetica-Bold", 12)
        pdf.drawString(40, y, label)
        pdf.setFillColor(ACCENT)
        pdf.setFont("Helvetica", size)
        pdf.drawString(40, y - 20, value)
        y -= 55

    pdf.setFillColor(colors.HexColor("#666666"))
    pdf.setFont("Helvetica", 9)
    pdf.drawString(40, y, f"Booking: #{ticket.booking_id or 'N/A'}")
    pdf.drawString(40, y - 12, f"Ticket: {ticket.ticket_number or '1'}")

    # QR section
    y -= 40
    pdf.setFillColor(colors.HexColor("#333333"))
    pdf.setFont("Helvetica-Bold", 12)
    pdf.drawCentredString(PAGE_WIDTH / 2, y, "SCAN FOR ENTRY")
    _draw_qr(pdf, ticket, (PAGE_WIDTH - QR_SIZE) / 2, y - QR_SIZE - 10, timeout)

    pdf.setFont("Helvetica", 8)
    pdf.setFillColor(colors.HexColor("#999999"))
    pdf.drawCentredString(PAGE_WIDTH / 2, 30, settings.EVENT_VENUE)

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()
