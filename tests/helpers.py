import itertools
from datetime import datetime, timedelta

from src.bookings.payment_service import PaymentProvider
from src.bookings.schemas import ProviderOrder
from src.config import Settings
from src.exceptions import NotFoundError, StoreUnavailableError
from src.notifications.schemas import Channel, ChannelResult
from src.notifications.whatsapp_service import WhatsAppService

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-pass"


# ── Stubs ─────────────────────────────────────────────────────

class FakeClock:
    """Callable stand-in for datetime.now that tests can move forward"""

    def __init__(self, start=None):
        self.now = start or datetime.now()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakePaymentProvider(PaymentProvider):
    name = "fake"

    def __init__(self, configured=True):
        self.configured = configured
        self.orders = []
        self._ids = itertools.count(1)

    @property
    def is_configured(self):
        return self.configured

    def create_order(self, amount, currency, receipt, booking_id):
        order = ProviderOrder(id=f"order_{next(self._ids)}", amount=amount * 100,
                              currency=currency, receipt=receipt)
        self.orders.append(order)
        return order


class FakeEmailService:
    provider = "fake"

    def __init__(self, error=None):
        self.error = error
        self.sent = []

    def send_ticket_email(self, to_email, subject, user_name, attachments=None):
        if self.error:
            raise self.error
        self.sent.append({"to": to_email, "subject": subject, "user_name": user_name,
                          "attachments": attachments or []})
        return ChannelResult.sent(Channel.EMAIL, self.provider, message_id=f"email_{len(self.sent)}", cost=0.5)


class FakeWhatsAppService(WhatsAppService):
    """Records sends instead of calling Twilio; reminders and broadcasts run through the real methods"""

    provider = "fake"
    is_configured = True

    def __init__(self, error=None, settings=None, fail_numbers=()):
        super().__init__(settings or Settings(WHATSAPP_BULK_DELAY_SECONDS=0))
        self.error = error
        self.fail_numbers = set(fail_numbers)
        self.sent = []

    def send_message(self, phone, body, media_url=None):
        if self.error:
            raise self.error
        if phone in self.fail_numbers:
            return ChannelResult.failed(Channel.WHATSAPP, self.provider, f"Invalid phone number: {phone}")
        self.sent.append({"phone": phone, "body": body, "media_url": media_url})
        return ChannelResult.sent(Channel.WHATSAPP, self.provider, message_id=f"wa_{len(self.sent)}", cost=0.5)

    def get_message_status(self, message_id):
        if not message_id.startswith("wa_"):
            raise NotFoundError("Message not found", error="Message not found")
        return {"message_id": message_id, "status": "delivered", "error_code": None,
                "error_message": None, "date_sent": None}


class UnreachableStore:
    """Primary store whose every operation fails as if the database were down"""

    name = "database"

    def __init__(self):
        self.calls = []

    def __getattr__(self, operation):
        def fail(*args, **kwargs):
            self.calls.append(operation)
            raise StoreUnavailableError("connection refused")
        return fail


# ── API helpers ───────────────────────────────────────────────

def event_date(days=10):
    return (datetime.now() + timedelta(days=days)).date()


def create_booking(client, pass_type="female", num_tickets=3, days=10):
    response = client.post("/api/bookings/create", json={
        "booking_date": event_date(days).isoformat(),
        "num_tickets": num_tickets,
        "pass_type": pass_type,
    })
    assert response.status_code == 201, response.text
    return response.json()


def add_primary_user(client, booking_id, email="asha@example.com", phone="9876543210"):
    response = client.post("/api/bookings/add-users", json={
        "booking_id": booking_id,
        "name": "Asha Patil",
        "email": email,
        "phone": phone,
        "is_primary": True,
    })
    assert response.status_code == 201, response.text
    return response.json()


def confirm_booking(client, pass_type="female", num_tickets=3):
    """Create, add a holder, order and confirm; returns (booking_id, confirm response body)"""
    booking_id = create_booking(client, pass_type, num_tickets)["booking"]["id"]
    add_primary_user(client, booking_id)
    order = client.post("/api/bookings/create-payment", json={"booking_id": booking_id}).json()["order"]
    response = client.post("/api/bookings/confirm-payment", json={
        "booking_id": booking_id,
        "razorpay_order_id": order["id"],
        "razorpay_payment_id": "pay_test_1",
    })
    assert response.status_code == 200, response.text
    return booking_id, response.json()


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


def admin_token(client):
    response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()["access_token"]
