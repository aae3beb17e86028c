"""
Payment orchestration.

Per booking the payment state moves ``no payment -> order created ->
captured``. Amounts are always repriced server side from the stored pass
type and quantity. Once a payment is captured, ticket issuance and
notifications run as side effects whose failures never undo or fail the
confirmation.
"""

import hashlib
import hmac
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import stripe

from src.bookings.pricing import calculate_ticket_price
from src.bookings.schemas import (
    BookingRecord, BookingStatus, ConfirmationResult, PaymentRecord, PaymentStatus, ProviderOrder
)
from src.bookings.ticket_service import TicketService
from src.config import Settings
from src.exceptions import (
    ConflictError, InvalidRequestError, NotFoundError, PaymentProviderError,
    PaymentVerificationError, ProviderNotConfiguredError
)
from src.health.governor import StoreSelector
from src.logger import setup_logger

logger = setup_logger(__name__)


class PaymentProvider(ABC):
    name = "provider"

    @property
    @abstractmethod
    def is_configured(self) -> bool: ...

    @abstractmethod
    def create_order(self, amount: int, currency: str, receipt: str, booking_id: str) -> ProviderOrder:
        """Mint a provider order for ``amount`` (whole currency units)."""


class StripePaymentProvider(PaymentProvider):
    """Stripe Checkout Sessions act as provider orders"""

    name = "stripe"

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.STRIPE_SECRET_KEY)

    def _redirect_url(self, configured: Optional[str], outcome: str) -> str:
        if configured:
            return configured
        base_url = (self.settings.PUBLIC_BASE_URL or "http://localhost:3000").rstrip("/")
        return f"{base_url}/payment/{outcome}?session_id={{CHECKOUT_SESSION_ID}}"

    def _client(self) -> stripe.StripeClient:
        return stripe.StripeClient(
            self.settings.STRIPE_SECRET_KEY,
            http_client=stripe.RequestsClient(timeout=self.settings.PROVIDER_TIMEOUT_SECONDS),
        )

    def create_order(self, amount, currency, receipt, booking_id) -> ProviderOrder:
        if not self.is_configured:
            raise ProviderNotConfiguredError("Payment provider not configured")

        unit_amount = int(amount) * 100  # paise
        try:
            session = self._client().checkout.sessions.create(params={
                "payment_method_types": ["card"],
                "mode": "payment",
                "line_items": [{
                    "price_data": {
                        "currency": currency.lower(),
                        "product_data": {"name": f"{self.settings.EVENT_NAME} Booking {booking_id}"},
                        "unit_amount": unit_amount,
                    },
                    "quantity": 1,
                }],
                "success_url": self._redirect_url(self.settings.STRIPE_SUCCESS_URL, "success"),
                "cancel_url": self._redirect_url(self.settings.STRIPE_CANCEL_URL, "cancel"),
                "client_reference_id": receipt,
                "metadata": {"booking_id": str(booking_id)},
            })
        except stripe.StripeError as exc:
            logger.warning("Stripe order for booking %s failed: %s", booking_id, exc)
            raise PaymentProviderError(str(exc) or "Payment provider rejected the order")

        return ProviderOrder(
            id=session.id,
            amount=session.amount_total or unit_amount,
            currency=currency,
            receipt=receipt,
            checkout_url=session.url,
        )


class PaymentSignatureVerifier:
    """HMAC-SHA256 over ``"{order_id}|{payment_id}"``; skipped when no secret is configured"""

    def __init__(self, secret: Optional[str]):
        self.secret = secret

    def sign(self, order_id: str, payment_id: str) -> str:
        message = f"{order_id}|{payment_id}".encode()
        return hmac.new(self.secret.encode(), message, hashlib.sha256).hexdigest()

    def verify(self, order_id: str, payment_id: str, signature: Optional[str]) -> bool:
        if not self.secret:
            logger.warning("PAYMENT_SIGNATURE_SECRET not set, accepting payment %s unverified", payment_id)
            return True
        if not signature:
            return False
        return hmac.compare_digest(self.sign(order_id, payment_id), signature)


class PaymentOrchestrator:
    def __init__(
        self,
        selector: StoreSelector,
        provider: PaymentProvider,
        verifier: PaymentSignatureVerifier,
        ticket_service: TicketService,
        dispatcher,
        settings: Settings
    ):
        self.selector = selector
        self.provider = provider
        self.verifier = verifier
        self.ticket_service = ticket_service
        self.dispatcher = dispatcher
        self.settings = settings

    def _get_booking(self, booking_id: str) -> Tuple[BookingRecord, bool]:
        booking, mock = self.selector.read("get_booking", booking_id)
        if not booking:
            raise NotFoundError("Booking not found", error="Booking not found")
        return booking, mock

    def create_order(self, booking_id: str) -> Tuple[ProviderOrder, PaymentRecord, bool]:
        booking, mock = self._get_booking(booking_id)
        if booking.status != BookingStatus.PENDING.value:
            raise ConflictError(f"Booking is already {booking.status}")

        price = calculate_ticket_price(booking.pass_type, booking.num_tickets)
        order = self.provider.create_order(
            amount=price.total_amount,
            currency=self.settings.CURRENCY,
            receipt=f"receipt_{booking.id}",
            booking_id=booking.id,
        )

        store = self.selector.store_for(mock)
        payment, payment_mock = self.selector.run(
            store, "create_payment", booking.id, order.id, price.total_amount, self.settings.CURRENCY
        )
        self.selector.run(store, "update_booking", booking.id, payment_id=payment.id)
        logger.info("Created %s order %s for booking %s (%s %s)", self.provider.name, order.id,
                    booking.id, price.total_amount, self.settings.CURRENCY)
        return order, payment, mock or payment_mock

    def _capture(self, store, booking: BookingRecord, order_id: str, payment_id: str) -> Tuple[PaymentRecord, bool]:
        captured, mock = self.selector.run(store, "latest_payment", booking.id, PaymentStatus.CAPTURED.value)
        if captured and captured.provider_order_id != order_id:
            raise ConflictError("Booking already paid with a different order")

        payment, capture_mock = self.selector.run(store, "capture_payment", booking.id, order_id, payment_id)
        mock = mock or capture_mock
        if payment:
            return payment, mock

        existing, lookup_mock = self.selector.run(store, "get_payment", booking.id, order_id)
        mock = mock or lookup_mock
        if existing and existing.status == PaymentStatus.CAPTURED.value:
            return existing, mock
        if existing:
            raise ConflictError(f"Payment for order {order_id} is {existing.status}")

        # order created while the store was unreachable: record it with the repriced amount
        amount = calculate_ticket_price(booking.pass_type, booking.num_tickets).total_amount
        logger.warning("No pending payment for order %s of booking %s, recording capture of %s",
                       order_id, booking.id, amount)
        payment, insert_mock = self.selector.run(
            store, "insert_captured_payment", booking.id, order_id, payment_id, amount, self.settings.CURRENCY
        )
        return payment, mock or insert_mock

    def confirm_payment(
        self,
        booking_id: str,
        order_id: str,
        payment_id: str,
        signature: Optional[str] = None
    ) -> ConfirmationResult:
        if not self.verifier.verify(order_id, payment_id, signature):
            raise PaymentVerificationError("Invalid payment signature")

        booking, mock = self._get_booking(booking_id)
        if booking.status == BookingStatus.CANCELLED.value:
            raise ConflictError("Booking is cancelled")

        store = self.selector.store_for(mock)
        payment, payment_mock = self._capture(store, booking, order_id, payment_id)
        mock = mock or payment_mock

        confirmed = None
        if booking.status == BookingStatus.PENDING.value:
            confirmed, confirm_mock = self.selector.run(
                store, "confirm_booking", booking.id,
                final_amount=payment.amount,
                total_amount=payment.amount + booking.discount_amount,
                payment_id=payment.id,
            )
            mock = mock or confirm_mock

        if not confirmed:
            # confirmed by an earlier or concurrent call, which owns issuance and notifications
            current, _ = self.selector.run(store, "get_booking", booking.id)
            qr_codes, tickets_mock = self.ticket_service.get_tickets(store, booking.id)
            return ConfirmationResult(
                booking=current or booking,
                payment=payment,
                qr_codes=qr_codes,
                notifications={"skipped": True, "reason": "Booking was already confirmed"},
                mock=mock or tickets_mock,
            )

        booking = confirmed
        logger.info("Booking %s confirmed with payment %s", booking.id, payment.id)

        users, _ = self.selector.run(store, "list_users", booking.id)
        try:
            qr_codes, tickets_mock = self.ticket_service.issue_tickets(store, booking, users)
            mock = mock or tickets_mock
        except Exception:
            logger.exception("Ticket issuance failed for booking %s", booking.id)
            qr_codes = []

        notifications = self._notify(store, booking, payment)

        return ConfirmationResult(
            booking=booking,
            payment=payment,
            qr_codes=qr_codes,
            notifications=notifications,
            mock=mock,
        )

    def _notify(self, store, booking: BookingRecord, payment: PaymentRecord) -> Dict[str, Any]:
        try:
            return self.dispatcher.dispatch(store, booking, payment)
        except Exception as exc:
            logger.exception("Notification dispatch failed for booking %s", booking.id)
            return {"success": False, "error": str(exc)}

    def resend_notifications(self, booking_id: str) -> Tuple[Dict[str, Any], bool]:
        booking, mock = self.selector.read("get_booking", booking_id)
        if not booking or booking.status != BookingStatus.CONFIRMED.value:
            raise NotFoundError("Confirmed booking not found", error="Booking not found")

        store = self.selector.store_for(mock)
        payment, payment_mock = self.selector.run(
            store, "latest_payment", booking.id, PaymentStatus.CAPTURED.value
        )
        if not payment:
            raise InvalidRequestError("No captured payment found for booking")

        return self.dispatcher.dispatch(store, booking, payment), mock or payment_mock
