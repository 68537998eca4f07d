"""Per-backend circuit breaker registry.

One breaker instance tracks every backend by name. It is constructed
explicitly and injected into the dispatcher; tests build a fresh instance.

States:
    CLOSED:    Normal operation, calls allowed.
    OPEN:      Backend failed too many times, calls blocked until the reset
               timeout has elapsed since the last failure.
    HALF_OPEN: Cooldown elapsed, exactly one trial call is handed out.
               Success closes the circuit, failure re-opens it.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker state tracking."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing if recovered


@dataclass
class BackendState:
    """Health record for a single backend."""

    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    last_failure_time: float | None = None
    trial_in_flight: bool = False


class CircuitBreaker:
    """
    Circuit breaker registry keyed by backend name.

    The breaker only gates whether a call is attempted. It never retries,
    and deciding what counts as a failure is the caller's job.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        reset_timeout: float = 300.0,  # 5 minutes
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the breaker registry.

        Args:
            failure_threshold: Consecutive failures that open the circuit.
            reset_timeout: Seconds an open circuit waits before a trial call.
            clock: Monotonic clock in seconds (injectable for tests).
        """
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._states: dict[str, BackendState] = {}
        self._lock = threading.Lock()

    def is_available(self, backend: str) -> bool:
        """
        Check whether a call to the backend may be attempted.

        May transition OPEN -> HALF_OPEN when the cooldown has elapsed, in
        which case this call receives the single trial.
        """
        with self._lock:
            record = self._get_or_create(backend)

            if record.state == CircuitState.CLOSED:
                return True

            if record.state == CircuitState.OPEN:
                last = record.last_failure_time
                elapsed = self._clock() - last if last is not None else float("inf")
                if elapsed > self.reset_timeout:
                    record.state = CircuitState.HALF_OPEN
                    record.trial_in_flight = True
                    logger.info(
                        "Circuit breaker HALF_OPEN for %s after %.1fs",
                        backend, elapsed,
                    )
                    return True
                return False

            # Half-open: only the trial already handed out may run
            if record.trial_in_flight:
                return False
            record.trial_in_flight = True
            return True

    def on_success(self, backend: str) -> None:
        """Record a successful call."""
        with self._lock:
            record = self._get_or_create(backend)

            if record.state == CircuitState.HALF_OPEN:
                logger.info("Backend %s recovered. Circuit CLOSED.", backend)

            record.state = CircuitState.CLOSED
            record.failures = 0
            record.trial_in_flight = False

    def on_failure(self, backend: str) -> None:
        """Record a failed call."""
        with self._lock:
            record = self._get_or_create(backend)
            record.failures += 1
            record.last_failure_time = self._clock()

            if record.state == CircuitState.HALF_OPEN:
                record.state = CircuitState.OPEN
                record.trial_in_flight = False
                logger.warning(
                    "Backend %s failed recovery check. Circuit OPEN.", backend
                )
            elif (
                record.state == CircuitState.CLOSED
                and record.failures >= self.failure_threshold
            ):
                record.state = CircuitState.OPEN
                logger.error(
                    "Backend %s reached failure threshold (%d). Circuit OPEN.",
                    backend, record.failures,
                )

    def release(self, backend: str) -> None:
        """
        Return an unfinished HALF_OPEN trial without recording an outcome.

        Used when a trial call ends without a verdict (cancelled, or an
        unexpected error). The circuit goes back to OPEN with its earlier
        failure time, so the next is_available() hands out a fresh trial.
        No-op in any other state.
        """
        with self._lock:
            record = self._states.get(backend)
            if record is None or record.state != CircuitState.HALF_OPEN:
                return
            if record.trial_in_flight:
                record.state = CircuitState.OPEN
                record.trial_in_flight = False
                logger.info("Recovery trial for %s abandoned, circuit back to OPEN", backend)

    def get_state(self, backend: str) -> BackendState:
        """Get a copy of the current state for a backend."""
        with self._lock:
            return replace(self._get_or_create(backend))

    def snapshot(self) -> dict[str, BackendState]:
        """Get copies of every tracked backend state."""
        with self._lock:
            return {name: replace(record) for name, record in self._states.items()}

    def reset(self) -> None:
        """Forget all backend states."""
        with self._lock:
            self._states.clear()
        logger.debug("Circuit breaker registry reset")

    def _get_or_create(self, backend: str) -> BackendState:
        record = self._states.get(backend)
        if record is None:
            record = BackendState()
            self._states[backend] = record
        return record
