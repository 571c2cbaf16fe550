"""
Circuit Breaker

Per-target guard that stops calling a failing collaborator after a
failure threshold and probes for recovery after a cool-down.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Optional, Tuple, TypeVar

import structlog

from .models import CircuitBreakerState, CircuitState

T = TypeVar("T")

Operation = Callable[[], Coroutine[Any, Any, T]]


class CircuitBreakerOpenError(Exception):
    """Raised when a call is rejected because the circuit is open."""

    def __init__(self, name: str, retry_after: float = 0.0):
        super().__init__(f"Circuit breaker '{name}' is open - service unavailable")
        self.name = name
        self.retry_after = retry_after


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5               # Failures before opening
    reset_timeout_seconds: float = 60.0      # Cool-down before probing
    monitoring_period_seconds: float = 300.0  # Informational only


class CircuitBreaker:
    """
    Circuit breaker state machine.

    States:
    - CLOSED: Normal operation, counting failures
    - OPEN: Rejecting calls until the cool-down elapses
    - HALF_OPEN: A single probe call decides between CLOSED and OPEN

    The open -> half-open transition is checked lazily on the next call.
    Successes while closed do not decay the failure counter; only a
    successful half-open probe clears it.
    """

    def __init__(
        self,
        name: str = "default",
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[Any] = None,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.logger = logger or structlog.stdlib.get_logger(__name__)
        self._clock = clock

        self._state = CircuitBreakerState()
        self._probe_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state.state

    @property
    def is_open(self) -> bool:
        return self._state.state == CircuitState.OPEN

    def get_state(self) -> CircuitBreakerState:
        """Return a copy of the current state."""
        with self._lock:
            return CircuitBreakerState(
                failures=self._state.failures,
                state=self._state.state,
                last_failure_time=self._state.last_failure_time,
            )

    def time_until_reset(self) -> float:
        with self._lock:
            return self._time_until_reset()

    async def execute(
        self,
        operation: Operation[T],
        fallback: Optional[Operation[T]] = None,
    ) -> T:
        """Run ``operation`` under circuit breaker protection."""
        with self._lock:
            admitted, probing = self._admit()
            retry_after = self._time_until_reset()

        if not admitted:
            if fallback is not None:
                self.logger.info("circuit_fallback_used", breaker=self.name)
                return await fallback()
            raise CircuitBreakerOpenError(self.name, retry_after=retry_after)

        try:
            result = await operation()
        except Exception:
            with self._lock:
                self._record_failure()
                self._end_call(probing)
                now_open = self._state.state == CircuitState.OPEN
            if fallback is not None and now_open:
                self.logger.info("circuit_fallback_used", breaker=self.name)
                return await fallback()
            raise
        except BaseException:
            # Cancelled before the probe could decide
            with self._lock:
                self._end_call(probing)
            raise

        with self._lock:
            self._record_success(probing)
            self._end_call(probing)
        return result

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        with self._lock:
            self._state = CircuitBreakerState()
            self._probe_in_flight = False
        self.logger.info("circuit_reset", breaker=self.name)

    # Callers below must hold self._lock

    def _admit(self) -> Tuple[bool, bool]:
        """Decide whether a call may proceed. Returns (admitted, is_probe)."""
        if self._state.state == CircuitState.OPEN:
            if not self._should_attempt_reset():
                return False, False
            self._state.state = CircuitState.HALF_OPEN
            self._probe_in_flight = True
            self.logger.info("circuit_half_open", breaker=self.name)
            return True, True

        if self._state.state == CircuitState.HALF_OPEN and self._probe_in_flight:
            # One probe at a time
            return False, False

        return True, False

    def _record_success(self, probing: bool) -> None:
        if probing:
            self._state = CircuitBreakerState()
            self.logger.info("circuit_closed", breaker=self.name)

    def _record_failure(self) -> None:
        self._state.failures += 1
        self._state.last_failure_time = self._clock()

        tripped = self._state.failures >= self.config.failure_threshold
        if tripped or self._state.state == CircuitState.HALF_OPEN:
            if self._state.state != CircuitState.OPEN:
                self.logger.warning(
                    "circuit_opened",
                    breaker=self.name,
                    failures=self._state.failures,
                )
            self._state.state = CircuitState.OPEN

    def _end_call(self, probing: bool) -> None:
        if not probing:
            return
        self._probe_in_flight = False
        if self._state.state == CircuitState.HALF_OPEN:
            self._state.state = CircuitState.OPEN

    def _should_attempt_reset(self) -> bool:
        if self._state.last_failure_time is None:
            return False
        elapsed = self._clock() - self._state.last_failure_time
        return elapsed >= self.config.reset_timeout_seconds

    def _time_until_reset(self) -> float:
        if self._state.state != CircuitState.OPEN or self._state.last_failure_time is None:
            return 0.0
        elapsed = self._clock() - self._state.last_failure_time
        return max(0.0, self.config.reset_timeout_seconds - elapsed)
