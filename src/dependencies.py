"""
Process-scoped runtime state and the request dependencies built on it.

Everything that outlives a request (fallback store, health governor, provider
clients) hangs off one ``Runtime`` stored on ``app.state.runtime``, so tests
can build an isolated app with their own engine, fakes and clocks.
"""

from datetime import datetime
from typing import Generator, Optional

from fastapi import Depends, Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.bookings.booking_service import BookingService
from src.bookings.payment_service import (
    PaymentOrchestrator, PaymentProvider, PaymentSignatureVerifier, StripePaymentProvider
)
from src.bookings.store import InMemoryBookingStore, SqlBookingStore
from src.bookings.ticket_service import TicketService
from src.config import Settings
from src.database import ping_database
from src.health.governor import HealthGovernor, StoreSelector
from src.notifications import CampaignService, EmailService, NotificationDispatcher, WhatsAppService


class Runtime:
    def __init__(
        self,
        settings: Settings,
        engine: Engine,
        fallback: Optional[InMemoryBookingStore] = None,
        governor: Optional[HealthGovernor] = None,
        payment_provider: Optional[PaymentProvider] = None,
        email_service: Optional[EmailService] = None,
        whatsapp_service: Optional[WhatsAppService] = None,
        clock=datetime.now
    ):
        self.settings = settings
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
        self.clock = clock
        self.fallback = fallback or InMemoryBookingStore(clock=clock)
        self.governor = governor or HealthGovernor(
            check=lambda: ping_database(engine),
            interval=settings.HEALTH_CHECK_INTERVAL_SECONDS,
        )
        self.payment_provider = payment_provider or StripePaymentProvider(settings)
        self.email_service = email_service or EmailService(settings)
        self.whatsapp_service = whatsapp_service or WhatsAppService(settings)
        self.verifier = PaymentSignatureVerifier(settings.PAYMENT_SIGNATURE_SECRET)


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def get_db(runtime: Runtime = Depends(get_runtime)) -> Generator[Session, None, None]:
    db = runtime.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_selector(db: Session = Depends(get_db), runtime: Runtime = Depends(get_runtime)) -> StoreSelector:
    return StoreSelector(SqlBookingStore(db), runtime.fallback, runtime.governor)


def get_booking_service(selector: StoreSelector = Depends(get_selector)) -> BookingService:
    return BookingService(selector)


def get_dispatcher(
    selector: StoreSelector = Depends(get_selector),
    runtime: Runtime = Depends(get_runtime)
) -> NotificationDispatcher:
    return NotificationDispatcher(selector, runtime.email_service, runtime.whatsapp_service, runtime.settings)


def get_campaign_service(
    selector: StoreSelector = Depends(get_selector),
    runtime: Runtime = Depends(get_runtime)
) -> CampaignService:
    return CampaignService(selector, runtime.whatsapp_service, runtime.settings)


def get_payment_orchestrator(
    selector: StoreSelector = Depends(get_selector),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    runtime: Runtime = Depends(get_runtime)
) -> PaymentOrchestrator:
    return PaymentOrchestrator(
        selector=selector,
        provider=runtime.payment_provider,
        verifier=runtime.verifier,
        ticket_service=TicketService(selector, runtime.settings.TICKET_EXPIRY_DAYS, clock=runtime.clock),
        dispatcher=dispatcher,
        settings=runtime.settings,
    )
