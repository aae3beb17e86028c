import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.bookings.store import InMemoryBookingStore, SqlBookingStore
from src.config import Settings
from src.database import Base
from src.dependencies import Runtime
from src.health.governor import HealthGovernor, StoreSelector
from src.main import create_app
from tests.helpers import (
    ADMIN_EMAIL, ADMIN_PASSWORD, FakeClock, FakeEmailService, FakePaymentProvider, FakeWhatsAppService
)


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL="sqlite://",
        DB_CONNECT_RETRIES=1,
        ENVIRONMENT="development",
        PAYMENT_SIGNATURE_SECRET=None,
        BOOTSTRAP_ADMIN_EMAIL=ADMIN_EMAIL,
        BOOTSTRAP_ADMIN_PASSWORD=ADMIN_PASSWORD,
        RESEND_API_KEY=None,
        SMTP_HOST=None,
        STRIPE_SECRET_KEY=None,
        TWILIO_ACCOUNT_SID=None,
        TWILIO_AUTH_TOKEN=None,
        TWILIO_WHATSAPP_FROM=None,
        PUBLIC_BASE_URL=None,
        WHATSAPP_SEND_MEDIA=False,
        WHATSAPP_BULK_DELAY_SECONDS=0,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def unreachable_engine(tmp_path):
    # parent directory does not exist, so every connection attempt fails
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'tickets.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def payment_provider():
    return FakePaymentProvider()


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def whatsapp_service():
    return FakeWhatsAppService()


@pytest.fixture
def runtime(test_settings, engine, clock, payment_provider, email_service, whatsapp_service):
    return Runtime(test_settings, engine, payment_provider=payment_provider, email_service=email_service,
                   whatsapp_service=whatsapp_service, clock=clock)


@pytest.fixture
def outage_runtime(test_settings, unreachable_engine, clock, payment_provider, email_service, whatsapp_service):
    return Runtime(test_settings, unreachable_engine, payment_provider=payment_provider,
                   email_service=email_service, whatsapp_service=whatsapp_service, clock=clock)


@pytest.fixture
def client(runtime):
    app = create_app(settings=runtime.settings, runtime=runtime)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def outage_client(outage_runtime):
    app = create_app(settings=outage_runtime.settings, runtime=outage_runtime)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db_session(engine):
    db = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    yield db
    db.close()


@pytest.fixture
def governor():
    return HealthGovernor(check=lambda: None, interval=30.0)


@pytest.fixture
def selector(db_session, governor):
    return StoreSelector(SqlBookingStore(db_session), InMemoryBookingStore(), governor)


@pytest.fixture
def memory_selector(governor):
    """Healthy selector over two in-memory stores; the primary answers with mock=False"""
    return StoreSelector(InMemoryBookingStore(), InMemoryBookingStore(), governor)
