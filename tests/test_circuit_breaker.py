"""
Tests for the priority-channel CircuitBreaker.
"""
import pytest

from swapcache.execution.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from tests.fakes import FakeClock


class TestCircuitBreaker:
    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker(CircuitBreakerConfig(error_threshold=3, cooldown_sec=10.0), clock=clock)

    def test_trips_at_threshold(self, breaker):
        assert not breaker.record_error("send", "rate_limited")
        assert not breaker.record_error("send", "rate_limited")
        assert breaker.record_error("send", "rate_limited")
        assert breaker.is_tripped

    def test_success_resets_streak(self, breaker):
        breaker.record_error("send", "rate_limited")
        breaker.record_error("send", "rate_limited")
        breaker.record_success()
        assert breaker.error_streak == 0
        assert not breaker.record_error("send", "rate_limited")

    def test_auto_reset_after_cooldown(self, breaker, clock):
        for _ in range(3):
            breaker.record_error("send", "rate_limited")
        clock.advance(9.9)
        assert breaker.is_tripped
        clock.advance(0.2)
        assert not breaker.is_tripped
        assert breaker.error_streak == 0

    def test_repeated_trips_back_off(self, breaker, clock):
        for _ in range(3):
            breaker.record_error("send", "rate_limited")
        clock.advance(10.1)
        assert not breaker.is_tripped
        for _ in range(3):
            breaker.record_error("send", "rate_limited")
        assert breaker.cooldown_remaining == pytest.approx(20.0)

    def test_events_are_reported(self, clock):
        events = []
        breaker = CircuitBreaker(
            CircuitBreakerConfig(error_threshold=1, cooldown_sec=5.0),
            clock=clock,
            log_event=lambda event, **kw: events.append(event),
        )
        breaker.record_error("send", "rate_limited")
        breaker.force_reset()
        assert events == ["priority_channel_error", "priority_circuit_open", "priority_circuit_closed"]
