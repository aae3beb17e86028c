import re
import time
from typing import Any, Dict, List, Optional

import requests
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from src.config import Settings
from src.exceptions import NotFoundError, NotificationProviderError, ProviderNotConfiguredError
from src.logger import setup_logger
from src.notifications.schemas import Channel, ChannelResult

logger = setup_logger(__name__)


def normalize_phone(phone: str, country_code: str = "91") -> Optional[str]:
    """E.164 form of a local or international number; None when nothing dialable remains"""
    raw = (phone or "").strip()
    digits = re.sub(r"\D", "", raw)
    if not digits:
        return None
    if raw.startswith("+"):
        return f"+{digits}"
    if digits.startswith("00"):
        return f"+{digits[2:]}"
    if len(digits) == 11 and digits.startswith("0"):
        digits = digits[1:]
    if len(digits) == 10:
        return f"+{country_code}{digits}"
    return f"+{digits}"


class WhatsAppService:
    """Twilio WhatsApp sender; text only unless media delivery is switched on"""

    provider = "twilio"

    def __init__(self, settings: Settings, client: Optional[Client] = None):
        self.settings = settings
        self._client = client

    @property
    def is_configured(self) -> bool:
        s = self.settings
        return bool(s.TWILIO_ACCOUNT_SID and s.TWILIO_AUTH_TOKEN and s.TWILIO_WHATSAPP_FROM)

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(
                self.settings.TWILIO_ACCOUNT_SID,
                self.settings.TWILIO_AUTH_TOKEN,
                http_client=TwilioHttpClient(timeout=self.settings.PROVIDER_TIMEOUT_SECONDS),
            )
        return self._client

    def _sender(self) -> str:
        sender = self.settings.TWILIO_WHATSAPP_FROM
        return sender if sender.startswith("whatsapp:") else f"whatsapp:{sender}"

    def send_message(self, phone: str, body: str, media_url: Optional[str] = None) -> ChannelResult:
        number = normalize_phone(phone, self.settings.WHATSAPP_COUNTRY_CODE)
        if not number:
            return ChannelResult.failed(Channel.WHATSAPP, self.provider, f"Invalid phone number: {phone}")

        if not self.is_configured:
            if self.settings.is_production:
                return ChannelResult.failed(Channel.WHATSAPP, "none", "WhatsApp provider not configured")
            logger.info("Mock WhatsApp to %s: %s", number, body[:100])
            return ChannelResult.sent(Channel.WHATSAPP, "mock", message_id=f"mock_{int(time.time() * 1000)}",
                                      mock=True)

        kwargs = {"from_": self._sender(), "to": f"whatsapp:{number}", "body": body}
        if media_url:
            kwargs["media_url"] = [media_url]

        try:
            message = self.client.messages.create(**kwargs)
        except (TwilioException, requests.RequestException) as exc:
            logger.warning("WhatsApp to %s failed: %s", number, exc)
            return ChannelResult.failed(Channel.WHATSAPP, self.provider, str(exc))

        logger.info("WhatsApp sent to %s (%s)", number, message.sid)
        return ChannelResult.sent(Channel.WHATSAPP, self.provider, message_id=message.sid,
                                  cost=self.settings.WHATSAPP_MESSAGE_COST)

    def reminder_body(self, customer_name: str, event_date, venue: Optional[str] = None) -> str:
        if hasattr(event_date, "strftime"):
            event_date = event_date.strftime("%d/%m/%Y")
        return (
            f"Event Reminder\n\n"
            f"Hi {customer_name or 'there'}!\n\n"
            f"{self.settings.EVENT_NAME} is coming up:\n"
            f"Date: {event_date}\n"
            f"Venue: {venue or self.settings.EVENT_VENUE}\n\n"
            f"Please bring your e-ticket (QR code) and a valid ID.\n"
            f"Gates open 1 hour before the event starts."
        )

    def send_event_reminder(self, phone: str, customer_name: str, event_date,
                            venue: Optional[str] = None) -> ChannelResult:
        return self.send_message(phone, self.reminder_body(customer_name, event_date, venue))

    def send_bulk_announcement(self, phone_numbers: List[str], body: str,
                               delay: Optional[float] = None) -> List[ChannelResult]:
        """One result per number, in order; sends are spaced out to stay under provider rate limits"""
        delay = self.settings.WHATSAPP_BULK_DELAY_SECONDS if delay is None else delay
        results = []
        for index, phone in enumerate(phone_numbers):
            if index and delay > 0:
                time.sleep(delay)
            results.append(self.send_message(phone, body))
            if (index + 1) % 10 == 0:
                logger.info("Announcement progress: %d/%d", index + 1, len(phone_numbers))

        sent = sum(1 for result in results if result.ok)
        logger.info("Announcement complete: %d sent, %d failed", sent, len(results) - sent)
        return results

    def get_message_status(self, message_id: str) -> Dict[str, Any]:
        """Delivery status of a message as Twilio reports it"""
        if not self.is_configured:
            raise ProviderNotConfiguredError("WhatsApp provider not configured")

        try:
            message = self.client.messages(message_id).fetch()
        except TwilioRestException as exc:
            if exc.status == 404:
                raise NotFoundError("Message not found", error="Message not found")
            raise NotificationProviderError(exc.msg or str(exc))
        except (TwilioException, requests.RequestException) as exc:
            raise NotificationProviderError(str(exc))

        return {
            "message_id": message.sid,
            "status": message.status,
            "error_code": message.error_code,
            "error_message": message.error_message,
            "date_sent": message.date_sent.isoformat() if message.date_sent else None,
        }
