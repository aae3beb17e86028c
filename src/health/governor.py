"""
Degraded-mode governor.

``HealthGovernor`` keeps a cached view of whether the relational store is
reachable, refreshed by a trivial ping at most once per interval.
``StoreSelector`` uses it to route each call either to the relational store
or to the in-memory fallback, and reports ``mock`` so responses can say
which one answered.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from src.bookings.store import BookingStore, InMemoryBookingStore
from src.exceptions import StoreUnavailableError
from src.logger import setup_logger

logger = setup_logger(__name__)

DEGRADED_REASON = "Database unavailable, serving data from the in-memory fallback store"


class HealthGovernor:
    def __init__(self, check: Callable[[], None], interval: float = 30.0,
                 clock: Callable[[], float] = time.monotonic):
        self._check = check
        self.interval = interval
        self._clock = clock
        self._lock = threading.Lock()
        self.healthy = True
        self.last_checked: Optional[float] = None
        self.last_error: Optional[str] = None

    def is_healthy(self) -> bool:
        """Cached health; checks only when the cache is older than ``interval``."""
        now = self._clock()
        with self._lock:
            if self.last_checked is not None and now - self.last_checked < self.interval:
                return self.healthy

        try:
            self._check()
        except Exception as exc:  # any failed check means "use the fallback"
            self._set(False, now, str(exc))
        else:
            self._set(True, now, None)
        return self.healthy

    def record_failure(self, error: Optional[BaseException] = None) -> None:
        """A request path hit a connectivity failure; degrade without waiting for the next check."""
        self._set(False, self._clock(), str(error) if error else None)

    def record_success(self) -> None:
        if not self.healthy:
            self._set(True, self._clock(), None)

    def _set(self, healthy: bool, checked_at: float, error: Optional[str]) -> None:
        with self._lock:
            changed = healthy != self.healthy
            self.healthy = healthy
            self.last_checked = checked_at
            self.last_error = error
        if changed and healthy:
            logger.info("Database reachable again, leaving degraded mode")
        elif changed:
            logger.warning("Database unreachable, entering degraded mode: %s", error)

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "healthy": self.healthy,
                "last_checked": self.last_checked,
                "last_error": self.last_error,
                "interval_seconds": self.interval,
            }


class StoreSelector:
    """Routes store calls between the relational store and the fallback"""

    def __init__(self, primary: BookingStore, fallback: InMemoryBookingStore, governor: HealthGovernor):
        self.primary = primary
        self.fallback = fallback
        self.governor = governor

    def store_for(self, mock: bool) -> BookingStore:
        return self.fallback if mock else self.primary

    def _degrade(self, operation: str, exc: StoreUnavailableError) -> None:
        self.governor.record_failure(exc)
        logger.warning("Falling back to in-memory store for %s", operation)

    def run(self, store: BookingStore, operation: str, *args, **kwargs) -> Tuple[Any, bool]:
        """Call ``operation`` on ``store``; a relational store outage reroutes the call to the fallback."""
        if store is self.fallback:
            return getattr(self.fallback, operation)(*args, **kwargs), True
        try:
            result = getattr(self.primary, operation)(*args, **kwargs)
        except StoreUnavailableError as exc:
            self._degrade(operation, exc)
            return getattr(self.fallback, operation)(*args, **kwargs), True
        self.governor.record_success()
        return result, False

    def write(self, operation: str, *args, **kwargs) -> Tuple[Any, bool]:
        return self.run(self.primary, operation, *args, **kwargs)

    def read(self, operation: str, *args, **kwargs) -> Tuple[Any, bool]:
        """Read from whichever store owns the record: relational first, fallback second."""
        result, mock = self.run(self.primary, operation, *args, **kwargs)
        if result or mock:
            return result, mock
        fallback_result = getattr(self.fallback, operation)(*args, **kwargs)
        if fallback_result:
            return fallback_result, True
        return result, False

    def for_read(self) -> Tuple[BookingStore, bool, Optional[str]]:
        """Store for staleness-tolerant reads (dashboards, listings) based on cached health."""
        if self.governor.is_healthy():
            return self.primary, False, None
        return self.fallback, True, DEGRADED_REASON
