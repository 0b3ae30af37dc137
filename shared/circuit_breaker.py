"""
Circuit Breaker Pattern Implementation.

This module provides circuit breaker protection for upstream LLM providers
so a degraded provider is not hammered while it recovers.

Circuit breaker states (pybreaker.STATE_*):
- CLOSED: Normal operation, requests pass through
- OPEN: Provider is down, requests fail fast without calling it
- HALF_OPEN: Reset window elapsed, exactly one trial request is allowed

Usage:
    from shared.circuit_breaker import ProviderCircuitBreaker

    breaker = ProviderCircuitBreaker("openai")
    if breaker.is_tripped():
        return failure_without_network_call()
    result = await call_provider()
    if result.success:
        breaker.record_success()
    else:
        breaker.record_failure(error)

A failed provider call is a result, not an exception, so pybreaker's call()
wrapper does not fit. As in call_with_breaker of the salon bot, the
pybreaker.CircuitBreaker is driven by hand (open / half_open / close) and
only holds state, the failure counter and the listeners. The reset window is
measured on an injectable monotonic clock, since pybreaker times it with
wall-clock datetimes.

Configuration:
    - trip_threshold: Number of consecutive failures before opening circuit
    - reset_timeout: Seconds to wait before allowing a trial call (half-open)
"""

import logging
import time
from typing import Any, Callable, Iterable, Mapping

import pybreaker

logger = logging.getLogger(__name__)


class ProviderBreakerListener(pybreaker.CircuitBreakerListener):
    """Log circuit breaker state changes and recorded failures."""

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state, new_state) -> None:
        """Log state transitions."""
        if new_state.name == pybreaker.STATE_OPEN:
            logger.warning(
                f"Circuit breaker '{cb.name}' OPENED - "
                f"provider appears down, failing fast for {cb.reset_timeout}s",
                extra={"provider": cb.name, "event": "breaker_opened"},
            )
        elif new_state.name == pybreaker.STATE_HALF_OPEN:
            logger.info(
                f"Circuit breaker '{cb.name}' HALF-OPEN - allowing one trial call",
                extra={"provider": cb.name, "event": "breaker_half_open"},
            )
        elif new_state.name == pybreaker.STATE_CLOSED:
            previous = old_state.name if old_state is not None else "unknown"
            logger.info(
                f"Circuit breaker '{cb.name}' CLOSED - "
                f"provider recovered, resuming normal operation (was {previous})",
                extra={"provider": cb.name, "event": "breaker_closed"},
            )

    def failure(self, cb: pybreaker.CircuitBreaker, exc: Exception) -> None:
        """Log failures that count toward opening the circuit."""
        logger.warning(
            f"Circuit breaker '{cb.name}' recorded failure | "
            f"fail_counter={cb.fail_counter}/{cb.fail_max} | error={exc}",
            extra={"provider": cb.name},
        )


_listener = ProviderBreakerListener()


class ProviderCircuitBreaker:
    """
    Per-provider breaker with an explicit single-trial HALF_OPEN gate.

    Invariant: the breaker reports OPEN only while less than reset_timeout
    seconds have passed since the last failure. Once the window elapses,
    is_tripped() moves the breaker to HALF_OPEN and lets exactly one call
    through; the outcome of that call decides the next state. A trial whose
    outcome is never reported expires after another reset_timeout.

    Not thread-safe: designed for a single asyncio event loop.
    """

    def __init__(
        self,
        name: str,
        trip_threshold: int = 3,
        reset_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.trip_threshold = trip_threshold
        self.reset_timeout = reset_timeout
        self.last_failure_at: float | None = None

        self._clock = clock
        self._trial_started_at: float | None = None
        self._storage = pybreaker.CircuitMemoryStorage(pybreaker.STATE_CLOSED)
        self.breaker = pybreaker.CircuitBreaker(
            name=name,
            fail_max=trip_threshold,
            reset_timeout=reset_timeout,
            state_storage=self._storage,
            listeners=[_listener],
        )
        logger.info(
            f"Created circuit breaker '{name}' | "
            f"trip_threshold={trip_threshold} | reset_timeout={reset_timeout}s"
        )

    @property
    def state(self) -> str:
        """pybreaker.STATE_CLOSED, STATE_OPEN or STATE_HALF_OPEN."""
        return self.breaker.current_state

    @property
    def failure_count(self) -> int:
        return self.breaker.fail_counter

    def _window_elapsed(self, since: float | None) -> bool:
        return since is None or self._clock() - since >= self.reset_timeout

    def is_tripped(self) -> bool:
        """
        Return True if calls to this provider must be skipped right now.

        Side effect: an OPEN breaker whose reset window has elapsed becomes
        HALF_OPEN and returns False once (the trial call). Until that trial
        reports back, further checks return True.
        """
        state = self.state

        if state == pybreaker.STATE_CLOSED:
            return False

        if state == pybreaker.STATE_OPEN:
            if not self._window_elapsed(self.last_failure_at):
                return True
            self.breaker.half_open()
            self._trial_started_at = self._clock()
            return False

        # HALF_OPEN
        if self._trial_started_at is not None:
            if not self._window_elapsed(self._trial_started_at):
                return True
            logger.warning(
                f"Circuit breaker '{self.name}' trial call never reported back, "
                f"admitting a new trial",
                extra={"provider": self.name},
            )
        self._trial_started_at = self._clock()
        return False

    def record_success(self) -> None:
        """Reset the failure counter; a successful trial closes the circuit."""
        self._trial_started_at = None
        if self.state == pybreaker.STATE_HALF_OPEN:
            # Closing resets the counter
            self.breaker.close()
        else:
            self._storage.reset_counter()

    def record_failure(self, error: Exception | None = None) -> None:
        """Count a failure; open the circuit at the threshold or on a failed trial."""
        was_half_open = self.state == pybreaker.STATE_HALF_OPEN
        self._trial_started_at = None
        self._storage.increment_counter()
        self.last_failure_at = self._clock()

        for listener in self.breaker.listeners:
            listener.failure(self.breaker, error or Exception("provider call failed"))

        if self.state == pybreaker.STATE_OPEN:
            # Already open: the new failure only restarts the reset window
            return
        if self.failure_count >= self.trip_threshold or was_half_open:
            self.breaker.open()

    def status(self) -> dict[str, Any]:
        """Snapshot for health checks."""
        return {
            "state": self.state,
            "fail_counter": self.failure_count,
            "reset_timeout": self.reset_timeout,
            "last_failure_at": self.last_failure_at,
        }


def create_provider_breakers(
    names: Iterable[str],
    trip_threshold: int = 3,
    reset_timeout: float = 30.0,
    clock: Callable[[], float] = time.monotonic,
) -> dict[str, ProviderCircuitBreaker]:
    """Build one breaker per provider name, for injection into the router."""
    return {
        name: ProviderCircuitBreaker(
            name,
            trip_threshold=trip_threshold,
            reset_timeout=reset_timeout,
            clock=clock,
        )
        for name in names
    }


def get_breaker_status(
    breakers: Mapping[str, ProviderCircuitBreaker],
) -> dict[str, dict[str, Any]]:
    """
    Get status of all circuit breakers for monitoring/health checks.

    Returns:
        Dict of {name: {state, fail_counter, reset_timeout, last_failure_at}}
    """
    return {name: breaker.status() for name, breaker in breakers.items()}
