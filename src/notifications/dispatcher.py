from typing import Any, Dict, List, Optional

from src.bookings.pdf_service import TicketPdfData, render_ticket_pdf
from src.bookings.schemas import BookingRecord, PaymentRecord, QRCodeRecord, UserRecord
from src.bookings.store import BookingStore, primary_user
from src.config import Settings
from src.health.governor import StoreSelector
from src.logger import setup_logger
from src.notifications.email_service import Attachment, EmailService
from src.notifications.schemas import Channel, ChannelResult
from src.notifications.whatsapp_service import WhatsAppService

logger = setup_logger(__name__)


def record_delivery(selector: StoreSelector, store: BookingStore, booking_id: Optional[str],
                    user_id: Optional[str], result: ChannelResult) -> None:
    """Append one MessageLog row for a delivery attempt"""
    # a failed audit write must not stop the remaining sends
    try:
        selector.run(
            store, "add_message_log",
            booking_id, user_id, result.channel.value, result.provider, result.status.value,
            cost_amount=result.cost, error_message=result.error,
        )
    except Exception:
        logger.exception("Could not record %s message log for booking %s", result.channel.value, booking_id)


class NotificationDispatcher:
    """Sends a confirmed booking's tickets by email and WhatsApp, each channel on its own"""

    def __init__(
        self,
        selector: StoreSelector,
        email_service: EmailService,
        whatsapp_service: WhatsAppService,
        settings: Settings
    ):
        self.selector = selector
        self.email_service = email_service
        self.whatsapp_service = whatsapp_service
        self.settings = settings

    def dispatch(
        self,
        store: BookingStore,
        booking: BookingRecord,
        payment: Optional[PaymentRecord] = None
    ) -> Dict[str, Any]:
        users, _ = self.selector.run(store, "list_users", booking.id)
        holder = primary_user(users)
        if holder is None:
            logger.warning("No ticket holder to notify for booking %s", booking.id)
            self._log(store, booking.id, None, ChannelResult.failed(
                Channel.EMAIL, "system", "No users found for booking"
            ))
            return {"success": False, "error": "No users found for booking", "email": None, "whatsapp": None}

        qr_codes, _ = self.selector.run(store, "list_qr_codes", booking.id)
        results: Dict[str, Any] = {"email": None, "whatsapp": None}

        if holder.email:
            result = self._send_email(booking, holder, qr_codes)
            self._log(store, booking.id, holder.id, result)
            results["email"] = result.model_dump(mode="json")

        if holder.phone:
            result = self._send_whatsapp(booking, holder, qr_codes, payment)
            self._log(store, booking.id, holder.id, result)
            results["whatsapp"] = result.model_dump(mode="json")

        attempted = [r for r in (results["email"], results["whatsapp"]) if r]
        results["success"] = any(r["status"] == "sent" for r in attempted)
        return results

    def _attachments(self, booking: BookingRecord, holder: UserRecord,
                     qr_codes: List[QRCodeRecord]) -> List[Attachment]:
        attachments = []
        for index, qr in enumerate(qr_codes, start=1):
            try:
                pdf = render_ticket_pdf(TicketPdfData(
                    name=holder.name,
                    event_date=booking.booking_date,
                    pass_type=booking.pass_type,
                    qr_code=qr.qr_code_url,
                    booking_id=booking.id,
                    ticket_number=qr.ticket_number,
                ), timeout=self.settings.PROVIDER_TIMEOUT_SECONDS)
            except Exception:
                logger.exception("PDF generation failed for ticket %s", qr.ticket_number)
                continue
            attachments.append((f"Ticket_{booking.id}_{index}.pdf", pdf))
        return attachments

    def _send_email(self, booking, holder, qr_codes) -> ChannelResult:
        try:
            return self.email_service.send_ticket_email(
                holder.email,
                f"Your {self.settings.EVENT_NAME} Ticket #{booking.id}",
                holder.name,
                self._attachments(booking, holder, qr_codes),
            )
        except Exception as exc:
            logger.exception("Email dispatch failed for booking %s", booking.id)
            return ChannelResult.failed(Channel.EMAIL, self.email_service.provider or "none", str(exc))

    def whatsapp_body(self, booking: BookingRecord, payment: Optional[PaymentRecord]) -> str:
        amount = payment.amount if payment else booking.final_amount
        return (
            f"Your {self.settings.EVENT_NAME} booking #{booking.id} is confirmed!\n\n"
            f"Date: {booking.booking_date.strftime('%d/%m/%Y')}\n"
            f"Tickets: {booking.num_tickets} {booking.pass_type} pass\n"
            f"Amount: Rs. {amount}\n\n"
            f"Show your QR code at the entrance."
        )

    def _media_url(self, qr_codes: List[QRCodeRecord]) -> Optional[str]:
        base_url = self.settings.PUBLIC_BASE_URL
        if not (self.settings.WHATSAPP_SEND_MEDIA and base_url and qr_codes):
            return None
        return (f"{base_url.rstrip('/')}{self.settings.API_V1_STR}"
                f"/bookings/tickets/{qr_codes[0].ticket_number}/pdf")

    def _send_whatsapp(self, booking, holder, qr_codes, payment) -> ChannelResult:
        try:
            return self.whatsapp_service.send_message(
                holder.phone,
                self.whatsapp_body(booking, payment),
                media_url=self._media_url(qr_codes),
            )
        except Exception as exc:
            logger.exception("WhatsApp dispatch failed for booking %s", booking.id)
            return ChannelResult.failed(Channel.WHATSAPP, WhatsAppService.provider, str(exc))

    def _log(self, store: BookingStore, booking_id: str, user_id: Optional[str], result: ChannelResult) -> None:
        record_delivery(self.selector, store, booking_id, user_id, result)
