from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from src.config import Settings
from src.exceptions import StoreUnavailableError
from src.health.governor import DEGRADED_REASON, StoreSelector
from src.logger import setup_logger

logger = setup_logger(__name__)

AdminResult = Tuple[Any, bool, Optional[str]]


class AdminService:
    """Read-only admin views; all of them degrade to fallback data instead of failing"""

    def __init__(self, selector: StoreSelector, settings: Settings, email_service=None,
                 whatsapp_service=None, payment_provider=None, clock=datetime.now):
        self.selector = selector
        self.settings = settings
        self.email_service = email_service
        self.whatsapp_service = whatsapp_service
        self.payment_provider = payment_provider
        self._clock = clock

    def _read(self, operation: str, *args) -> AdminResult:
        store, mock, reason = self.selector.for_read()
        try:
            return getattr(store, operation)(*args), mock, reason
        except StoreUnavailableError as exc:
            self.selector.governor.record_failure(exc)
            logger.warning("Admin %s served from fallback store", operation)
            return getattr(self.selector.fallback, operation)(*args), True, DEGRADED_REASON

    def dashboard_stats(self) -> AdminResult:
        return self._read("dashboard_stats", self._clock())

    def recent_scans(self, limit: int = 10) -> AdminResult:
        return self._read("recent_scans", limit)

    def chart_data(self, days: int = 7) -> AdminResult:
        return self._read("chart_data", self._clock().date(), days)

    def list_bookings(self, limit: int = 50) -> AdminResult:
        bookings, mock, reason = self._read("list_bookings", limit)
        if mock:
            return bookings, mock, reason

        # offline bookings taken during an earlier outage stay visible next to persisted ones
        offline = self.selector.fallback.list_bookings(limit)
        if offline:
            bookings = sorted(bookings + offline, key=lambda b: b.get("created_at") or "", reverse=True)[:limit]
        return bookings, mock, reason

    def list_scans(self, limit: int = 100) -> AdminResult:
        scans, mock, reason = self._read("list_scans", limit)
        return [scan.to_response() for scan in scans], mock, reason

    def list_message_logs(self, booking_id: Optional[str] = None, limit: int = 100) -> AdminResult:
        logs, mock, reason = self._read("list_message_logs", booking_id, limit)
        return [log.to_response() for log in logs], mock, reason

    def config_status(self) -> Dict[str, Any]:
        governor = self.selector.governor
        healthy = governor.is_healthy()
        email_provider = self.email_service.provider if self.email_service else None
        return {
            "environment": self.settings.ENVIRONMENT,
            "database": {
                "connected": healthy,
                "mode": "normal" if healthy else "fallback",
                **governor.status(),
            },
            "payments": {
                "provider": getattr(self.payment_provider, "name", None),
                "configured": bool(self.payment_provider and self.payment_provider.is_configured),
                "signature_verification": bool(self.settings.PAYMENT_SIGNATURE_SECRET),
            },
            "email": {
                "provider": email_provider or ("none" if self.settings.is_production else "mock"),
                "configured": email_provider is not None,
            },
            "whatsapp": {
                "provider": "twilio",
                "configured": bool(self.whatsapp_service and self.whatsapp_service.is_configured),
                "send_media": self.settings.WHATSAPP_SEND_MEDIA,
            },
        }

    def fallback_snapshot(self) -> Dict[str, Any]:
        return self.selector.fallback.snapshot()

    def clear_fallback(self, cleared_by: Optional[str] = None) -> Dict[str, Any]:
        stats = self.selector.fallback.snapshot()["stats"]
        self.selector.fallback.clear(log=False)
        logger.warning("Fallback store cleared by %s: %s", cleared_by or "operator", stats)
        return stats

    @staticmethod
    def bookings_message(bookings: List[Dict[str, Any]], mock: bool) -> Optional[str]:
        if mock:
            return f"Database unavailable - showing {len(bookings)} offline bookings"
        return None
