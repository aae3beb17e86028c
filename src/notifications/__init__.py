"""
Ticket notifications: email (Resend or SMTP) and WhatsApp (Twilio).

- email_service.py: ticket email with PDF attachments
- whatsapp_service.py: WhatsApp text (optionally media) messages, reminders, broadcasts
- dispatcher.py: per-booking fan-out, one MessageLog row per attempt
- campaigns.py: admin reminder and announcement runs, one MessageLog row per recipient
"""

from .campaigns import CampaignService
from .dispatcher import NotificationDispatcher
from .email_service import EmailService
from .schemas import Channel, ChannelResult, DeliveryStatus
from .whatsapp_service import WhatsAppService

__all__ = [
    "CampaignService",
    "NotificationDispatcher",
    "EmailService",
    "WhatsAppService",
    "Channel",
    "ChannelResult",
    "DeliveryStatus",
]
