from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./tickets.db"
    DB_POOL_PRE_PING: bool = True
    DB_CONNECT_RETRIES: int = 3

    # Security
    SECRET_KEY: str = "dandiya-dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    BOOTSTRAP_ADMIN_EMAIL: Optional[str] = None
    BOOTSTRAP_ADMIN_PASSWORD: Optional[str] = None

    # Application
    PROJECT_NAME: str = "Malang Raas Dandiya Tickets"
    API_V1_STR: str = "/api"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    CORS_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # Degraded mode
    HEALTH_CHECK_INTERVAL_SECONDS: float = 30.0
    PROVIDER_TIMEOUT_SECONDS: float = 15.0

    # Event
    EVENT_NAME: str = "Malang Raas Dandiya 2025"
    EVENT_VENUE: str = "Regal Lawns, Chhatrapati Sambhajinagar"
    TICKET_EXPIRY_DAYS: int = 30
    CURRENCY: str = "INR"

    # Payments (Stripe checkout sessions act as provider orders)
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_SUCCESS_URL: Optional[str] = None
    STRIPE_CANCEL_URL: Optional[str] = None
    PAYMENT_SIGNATURE_SECRET: Optional[str] = None

    # Email
    RESEND_API_KEY: Optional[str] = None
    RESEND_API_URL: str = "https://api.resend.com/emails"
    EMAIL_FROM_NAME: str = "Malang Dandiya"
    EMAIL_FROM_ADDRESS: str = "onboarding@resend.dev"
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    EMAIL_MESSAGE_COST: float = 0.5

    # WhatsApp (Twilio)
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_WHATSAPP_FROM: Optional[str] = None
    WHATSAPP_SEND_MEDIA: bool = False
    WHATSAPP_COUNTRY_CODE: str = "91"
    WHATSAPP_MESSAGE_COST: float = 0.5
    WHATSAPP_BULK_DELAY_SECONDS: float = 1.0
    PUBLIC_BASE_URL: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

settings = Settings()
