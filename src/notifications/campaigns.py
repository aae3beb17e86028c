"""
Admin-triggered WhatsApp campaigns: event reminders and bulk announcements.

Every recipient gets its own ``MessageLog`` row, whatever the outcome, and
one failed send never stops the rest of the run.
"""

import time
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from src.bookings.schemas import BookingRecord, UserRecord
from src.bookings.store import BookingStore
from src.config import Settings
from src.health.governor import StoreSelector
from src.logger import setup_logger
from src.notifications.dispatcher import record_delivery
from src.notifications.schemas import Channel, ChannelResult
from src.notifications.whatsapp_service import WhatsAppService

logger = setup_logger(__name__)

Recipient = Tuple[str, Optional[str], Optional[str]]  # phone, booking_id, user_id


class CampaignService:
    def __init__(self, selector: StoreSelector, whatsapp_service: WhatsAppService, settings: Settings):
        self.selector = selector
        self.whatsapp_service = whatsapp_service
        self.settings = settings

    def _contacts(self, event_date: Optional[date]) -> Tuple[List[Tuple[BookingRecord, UserRecord]], BookingStore, bool]:
        store, _, _ = self.selector.for_read()
        contacts, mock = self.selector.run(store, "confirmed_contacts", event_date)
        return [(booking, holder) for booking, holder in contacts if holder.phone], \
            self.selector.store_for(mock), mock

    def _summary(self, recipients: List[Recipient], results: List[ChannelResult], mock: bool) -> Dict[str, Any]:
        sent = sum(1 for result in results if result.ok)
        return {
            "total": len(results),
            "sent": sent,
            "failed": len(results) - sent,
            "results": [
                {
                    "phone": phone,
                    "booking_id": booking_id,
                    "status": result.status.value,
                    "message_id": result.message_id,
                    "error": result.error,
                }
                for (phone, booking_id, _), result in zip(recipients, results)
            ],
            "mock": mock,
        }

    def _send(self, send, phone: str) -> ChannelResult:
        try:
            return send()
        except Exception as exc:
            logger.exception("WhatsApp campaign send to %s failed", phone)
            return ChannelResult.failed(Channel.WHATSAPP, WhatsAppService.provider, str(exc))

    def send_reminders(self, event_date: Optional[date] = None) -> Dict[str, Any]:
        """Remind every confirmed holder with a phone number, optionally for one event date only"""
        contacts, store, mock = self._contacts(event_date)
        delay = self.settings.WHATSAPP_BULK_DELAY_SECONDS

        recipients: List[Recipient] = []
        results: List[ChannelResult] = []
        for index, (booking, holder) in enumerate(contacts):
            if index and delay > 0:
                time.sleep(delay)
            result = self._send(lambda: self.whatsapp_service.send_event_reminder(
                holder.phone, holder.name, booking.booking_date, self.settings.EVENT_VENUE
            ), holder.phone)
            record_delivery(self.selector, store, booking.id, holder.id, result)
            recipients.append((holder.phone, booking.id, holder.id))
            results.append(result)

        logger.info("Event reminders for %s: %d recipients", event_date or "all dates", len(results))
        return self._summary(recipients, results, mock)

    def send_announcement(self, message: str, phone_numbers: Optional[List[str]] = None) -> Dict[str, Any]:
        """Broadcast ``message`` to the given numbers, or to every confirmed holder when none are given"""
        if phone_numbers:
            recipients: List[Recipient] = [(phone, None, None) for phone in phone_numbers]
            store, mock = self.selector.primary, False
        else:
            contacts, store, mock = self._contacts(None)
            recipients = [(holder.phone, booking.id, holder.id) for booking, holder in contacts]

        if not recipients:
            return self._summary([], [], mock)

        try:
            results = self.whatsapp_service.send_bulk_announcement([phone for phone, _, _ in recipients], message)
        except Exception as exc:
            logger.exception("Bulk announcement aborted")
            results = [ChannelResult.failed(Channel.WHATSAPP, WhatsAppService.provider, str(exc))
                       for _ in recipients]

        for (_, booking_id, user_id), result in zip(recipients, results):
            record_delivery(self.selector, store, booking_id, user_id, result)
        return self._summary(recipients, results, mock)
