"""
Unit tests for shared/circuit_breaker.py.

Tests coverage:
- Tripping after the failure threshold
- OPEN only within the reset window
- HALF_OPEN admits exactly one trial call
- Trial success closes, trial failure reopens and restarts the timer
- A trial that never reports back expires
- Listener logging and status snapshots for health checks
"""

import logging

import pybreaker

from shared.circuit_breaker import (
    ProviderCircuitBreaker,
    create_provider_breakers,
    get_breaker_status,
)


def make_breaker(clock, threshold: int = 3, reset_timeout: float = 30.0) -> ProviderCircuitBreaker:
    return ProviderCircuitBreaker("openai", trip_threshold=threshold, reset_timeout=reset_timeout, clock=clock)


def trip(breaker: ProviderCircuitBreaker) -> None:
    for _ in range(breaker.trip_threshold):
        breaker.record_failure()


class TestTripping:
    """Failure counting and opening."""

    def test_new_breaker_is_closed(self, clock):
        breaker = make_breaker(clock)

        assert breaker.state == pybreaker.STATE_CLOSED
        assert breaker.is_tripped() is False

    def test_wraps_pybreaker(self, clock):
        breaker = make_breaker(clock)

        assert isinstance(breaker.breaker, pybreaker.CircuitBreaker)
        assert breaker.breaker.fail_max == 3
        assert breaker.breaker.name == "openai"

    def test_opens_after_three_failures(self, clock):
        """Three consecutive failures trip the breaker."""
        breaker = make_breaker(clock)

        breaker.record_failure()
        breaker.record_failure()
        assert breaker.is_tripped() is False

        breaker.record_failure()
        assert breaker.state == pybreaker.STATE_OPEN
        assert breaker.breaker.current_state == pybreaker.STATE_OPEN
        assert breaker.is_tripped() is True

    def test_success_resets_failure_count(self, clock):
        breaker = make_breaker(clock)

        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()

        assert breaker.failure_count == 1
        assert breaker.breaker.fail_counter == 1
        assert breaker.state == pybreaker.STATE_CLOSED


class TestHalfOpen:
    """Reset window and trial call behavior."""

    def test_stays_open_inside_reset_window(self, clock):
        breaker = make_breaker(clock)
        trip(breaker)

        clock.advance(29.9)

        assert breaker.is_tripped() is True

    def test_allows_exactly_one_trial_after_window(self, clock):
        """After 30s exactly one call is admitted; the next is blocked."""
        breaker = make_breaker(clock)
        trip(breaker)

        clock.advance(30.0)

        assert breaker.is_tripped() is False
        assert breaker.state == pybreaker.STATE_HALF_OPEN
        assert breaker.is_tripped() is True

    def test_trial_success_closes(self, clock):
        breaker = make_breaker(clock)
        trip(breaker)
        clock.advance(31)
        breaker.is_tripped()

        breaker.record_success()

        assert breaker.state == pybreaker.STATE_CLOSED
        assert breaker.failure_count == 0
        assert breaker.is_tripped() is False

    def test_trial_failure_reopens_and_restarts_timer(self, clock):
        breaker = make_breaker(clock)
        trip(breaker)
        clock.advance(31)
        breaker.is_tripped()

        breaker.record_failure()

        assert breaker.state == pybreaker.STATE_OPEN
        assert breaker.last_failure_at == clock.now
        clock.advance(10)
        assert breaker.is_tripped() is True
        clock.advance(20)
        assert breaker.is_tripped() is False

    def test_unreported_trial_expires(self, clock):
        """A trial whose outcome is lost does not keep the provider out forever."""
        breaker = make_breaker(clock)
        trip(breaker)
        clock.advance(31)
        assert breaker.is_tripped() is False  # trial admitted, never reported

        clock.advance(29)
        assert breaker.is_tripped() is True

        clock.advance(1)
        assert breaker.is_tripped() is False
        assert breaker.is_tripped() is True

    def test_success_while_open_keeps_circuit_open(self, clock):
        """A late success of a call started before tripping does not close the circuit."""
        breaker = make_breaker(clock)
        trip(breaker)

        breaker.record_success()

        assert breaker.state == pybreaker.STATE_OPEN
        assert breaker.failure_count == 0


class TestLogging:

    def test_transitions_logged(self, clock, caplog):
        breaker = make_breaker(clock)

        with caplog.at_level(logging.INFO, logger="shared.circuit_breaker"):
            trip(breaker)
            clock.advance(30)
            breaker.is_tripped()
            breaker.record_success()

        events = [getattr(record, "event", None) for record in caplog.records]
        assert events.count("breaker_opened") == 1
        assert "breaker_half_open" in events
        assert "breaker_closed" in events

    def test_failure_error_logged(self, clock, caplog):
        breaker = make_breaker(clock)

        with caplog.at_level(logging.WARNING, logger="shared.circuit_breaker"):
            breaker.record_failure(RuntimeError("openai: rate limited"))

        assert "fail_counter=1/3" in caplog.text
        assert "openai: rate limited" in caplog.text


class TestStatus:
    """Health-check snapshots."""

    def test_status_snapshot(self, clock):
        breaker = make_breaker(clock)
        breaker.record_failure()

        status = breaker.status()

        assert status["state"] == "closed"
        assert status["fail_counter"] == 1
        assert status["reset_timeout"] == 30.0
        assert status["last_failure_at"] == clock.now

    def test_get_breaker_status_for_all(self, clock):
        breakers = create_provider_breakers(["openai", "anthropic"], clock=clock)
        trip(breakers["anthropic"])

        status = get_breaker_status(breakers)

        assert status["openai"]["state"] == "closed"
        assert status["anthropic"]["state"] == "open"
