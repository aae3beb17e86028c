"""
Ticket email delivery.

Resend's HTTP API is tried first, then plain SMTP. With neither configured,
development builds log a mock delivery and production reports a failure.
"""

import base64
import html
import smtplib
import time
from email.message import EmailMessage
from typing import List, Optional, Tuple

import requests

from src.config import Settings
from src.logger import setup_logger
from src.notifications.schemas import Channel, ChannelResult

logger = setup_logger(__name__)

Attachment = Tuple[str, bytes]  # (filename, PDF bytes)


class EmailService:
    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def provider(self) -> Optional[str]:
        if self.settings.RESEND_API_KEY:
            return "resend"
        if self.settings.SMTP_HOST:
            return "smtp"
        return None

    @property
    def sender(self) -> str:
        return f"{self.settings.EMAIL_FROM_NAME} <{self.settings.EMAIL_FROM_ADDRESS}>"

    def render_html(self, user_name: str) -> str:
        s = self.settings
        return f"""
        <html>
          <body style="font-family: Arial, sans-serif; background-color: #f5f5f5; padding: 20px;">
            <div style="max-width: 600px; margin: 0 auto; background: white; padding: 30px; border-radius: 10px;">
              <h1 style="text-align: center; color: #d4af37;">{s.EVENT_NAME}</h1>
              <p>Dear {html.escape(user_name or "Guest")},</p>
              <p>Thank you for booking your tickets for {s.EVENT_NAME}! Your booking has been confirmed.</p>
              <p><strong>Venue:</strong> {s.EVENT_VENUE}</p>
              <p>Your e-ticket is attached to this email. Please present the QR code at the entrance.</p>
              <ul>
                <li>Keep your ticket safe and bring it to the event</li>
                <li>Entry is subject to QR code verification</li>
              </ul>
            </div>
          </body>
        </html>
        """

    def send_ticket_email(
        self,
        to_email: str,
        subject: str,
        user_name: str,
        attachments: Optional[List[Attachment]] = None
    ) -> ChannelResult:
        attachments = attachments or []
        provider = self.provider

        if provider is None:
            if self.settings.is_production:
                return ChannelResult.failed(Channel.EMAIL, "none", "Email provider not configured")
            logger.info("Mock email to %s: %s (%d attachments)", to_email, subject, len(attachments))
            return ChannelResult.sent(Channel.EMAIL, "mock", message_id=f"mock_{int(time.time() * 1000)}",
                                      mock=True)

        body = self.render_html(user_name)
        try:
            if provider == "resend":
                message_id = self._send_resend(to_email, subject, body, attachments)
            else:
                message_id = self._send_smtp(to_email, subject, body, attachments)
        except (requests.RequestException, smtplib.SMTPException, OSError) as exc:
            logger.warning("Email via %s to %s failed: %s", provider, to_email, exc)
            return ChannelResult.failed(Channel.EMAIL, provider, str(exc))

        logger.info("Email sent via %s to %s", provider, to_email)
        return ChannelResult.sent(Channel.EMAIL, provider, message_id=message_id,
                                  cost=self.settings.EMAIL_MESSAGE_COST)

    def _send_resend(self, to_email, subject, body, attachments) -> Optional[str]:
        payload = {
            "from": self.sender,
            "to": [to_email],
            "subject": subject,
            "html": body,
        }
        if attachments:
            payload["attachments"] = [
                {"filename": filename, "content": base64.b64encode(content).decode()}
                for filename, content in attachments
            ]

        response = requests.post(
            self.settings.RESEND_API_URL,
            json=payload,
            headers={"Authorization": f"Bearer {self.settings.RESEND_API_KEY}"},
            timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        return response.json().get("id")

    def _send_smtp(self, to_email, subject, body, attachments) -> Optional[str]:
        s = self.settings
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to_email
        message["Subject"] = subject
        message.set_content("Your booking is confirmed. Your e-ticket is attached.")
        message.add_alternative(body, subtype="html")
        for filename, content in attachments:
            message.add_attachment(content, maintype="application", subtype="pdf", filename=filename)

        with smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=s.PROVIDER_TIMEOUT_SECONDS) as server:
            if s.SMTP_USE_TLS:
                server.starttls()
            if s.SMTP_USER:
                server.login(s.SMTP_USER, s.SMTP_PASSWORD or "")
            server.send_message(message)
        return message.get("Message-ID")
