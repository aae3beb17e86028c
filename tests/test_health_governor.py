import pytest

from src.bookings.store import InMemoryBookingStore
from src.exceptions import StoreUnavailableError
from src.health.governor import DEGRADED_REASON, HealthGovernor, StoreSelector
from tests.helpers import UnreachableStore


class MonotonicClock:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value


class CountingCheck:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.error:
            raise self.error


class TestHealthGovernor:
    def test_health_result_is_cached_for_interval(self):
        check, clock = CountingCheck(), MonotonicClock()
        governor = HealthGovernor(check, interval=30, clock=clock)

        assert governor.is_healthy() is True
        assert governor.is_healthy() is True
        assert check.calls == 1

        clock.value += 31
        governor.is_healthy()
        assert check.calls == 2

    def test_any_check_exception_means_unhealthy(self):
        governor = HealthGovernor(CountingCheck(RuntimeError("boom")), interval=30, clock=MonotonicClock())
        assert governor.is_healthy() is False
        assert governor.last_error == "boom"

    def test_recovers_after_interval(self):
        check, clock = CountingCheck(ConnectionError("refused")), MonotonicClock()
        governor = HealthGovernor(check, interval=30, clock=clock)
        assert governor.is_healthy() is False

        check.error = None
        clock.value += 10
        assert governor.is_healthy() is False
        clock.value += 30
        assert governor.is_healthy() is True
        assert governor.last_error is None

    def test_record_failure_skips_check_until_interval(self):
        check, clock = CountingCheck(), MonotonicClock()
        governor = HealthGovernor(check, interval=30, clock=clock)

        governor.record_failure(StoreUnavailableError("connection refused"))
        assert governor.is_healthy() is False
        assert check.calls == 0

        governor.record_success()
        assert governor.is_healthy() is True

    def test_status(self):
        governor = HealthGovernor(CountingCheck(), interval=15, clock=MonotonicClock())
        governor.is_healthy()
        assert governor.status() == {
            "healthy": True,
            "last_checked": 1000.0,
            "last_error": None,
            "interval_seconds": 15,
        }


class TestStoreSelector:
    @pytest.fixture
    def degraded(self):
        governor = HealthGovernor(CountingCheck(), interval=30, clock=MonotonicClock())
        return StoreSelector(UnreachableStore(), InMemoryBookingStore(), governor)

    def test_write_falls_back_on_outage(self, degraded):
        booking, mock = degraded.write("create_booking", {
            "booking_date": "2025-10-02", "num_tickets": 1, "pass_type": "female",
        })
        assert mock is True
        assert booking.is_mock is True
        assert degraded.governor.healthy is False
        assert degraded.fallback.get_booking(booking.id) is not None

    def test_read_checks_fallback_when_primary_has_nothing(self, memory_selector):
        booking = memory_selector.fallback.create_booking({
            "booking_date": "2025-10-02", "num_tickets": 1, "pass_type": "female",
        })
        found, mock = memory_selector.read("get_booking", booking.id)
        assert found.id == booking.id
        assert mock is True

    def test_read_prefers_primary(self, memory_selector):
        booking = memory_selector.primary.create_booking({
            "booking_date": "2025-10-02", "num_tickets": 1, "pass_type": "female",
        })
        found, mock = memory_selector.read("get_booking", booking.id)
        assert found.id == booking.id
        assert mock is False

    def test_read_miss_everywhere(self, memory_selector):
        assert memory_selector.read("get_booking", "42") == (None, False)

    def test_run_on_fallback_is_always_mock(self, memory_selector):
        _, mock = memory_selector.run(memory_selector.fallback, "list_users", "1")
        assert mock is True
        assert memory_selector.store_for(True) is memory_selector.fallback
        assert memory_selector.store_for(False) is memory_selector.primary

    def test_for_read_follows_cached_health(self, degraded):
        assert degraded.for_read() == (degraded.primary, False, None)
        degraded.governor.record_failure()
        assert degraded.for_read() == (degraded.fallback, True, DEGRADED_REASON)
