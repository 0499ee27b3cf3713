"""
Circuit breaker with an explicit, named registry.

Protects provider endpoints against hammering while they are down:
repeated consecutive failures open the circuit, calls are then rejected
without being attempted until a cool-down has passed, and a single trial
call decides whether the circuit closes again.

States:
- CLOSED: calls pass; consecutive failures are counted
- OPEN: calls rejected with CircuitOpenError until reset_timeout_ms elapses
- HALF_OPEN: exactly one trial call admitted

Breakers are keyed by resource name (e.g. "unsiloed:polling") and owned by a
CircuitBreakerRegistry that the application builds once and hands to every
executor/poller. Every caller using the same name shares the same health
state; distinct names are independent.

Usage:
    registry = CircuitBreakerRegistry()
    breaker = registry.get_or_create("reducto:polling", CircuitBreakerConfig())
    breaker.before_call()          # raises CircuitOpenError when open
    ...
    breaker.record_success()       # or breaker.record_failure(exc)
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import structlog

from docproc.models.enums import CircuitState
from docproc.models.policy_models import CircuitBreakerConfig
from docproc.monitoring.metrics import (
    circuit_rejections_total,
    circuit_state_transitions_total,
)
from docproc.resilience.exceptions import CircuitOpenError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CircuitBreakerSnapshot:
    """Point-in-time view of a breaker, for inspection and logging."""

    name: str
    state: CircuitState
    consecutive_failures: int
    opened_at: Optional[float]
    threshold_failures: int
    reset_timeout_ms: int


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker for one named resource.

    Mutated only through ``before_call`` / ``record_success`` /
    ``record_failure``, which the retry executor calls once per attempt.
    Transitions happen under a lock and never await, so the breaker is safe
    to share between asyncio tasks and between threads.

    Attributes:
        name: Registry key of the guarded resource
        config: Threshold and cool-down
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize a closed breaker.

        Args:
            name: Resource name (e.g. "unsiloed:polling")
            config: Breaker configuration (defaults: 3 failures, 30s cool-down)
            clock: Monotonic clock in seconds (injectable for tests)
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Current state (an expired OPEN becomes HALF_OPEN on access)."""
        with self._lock:
            self._check_reset_timeout()
            return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def opened_at(self) -> Optional[float]:
        return self._opened_at

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def _elapsed_since_open_ms(self) -> float:
        if self._opened_at is None:
            return 0.0
        return (self._clock() - self._opened_at) * 1000

    def _check_reset_timeout(self) -> None:
        """OPEN -> HALF_OPEN once the cool-down has elapsed (called under lock)."""
        if self._state != CircuitState.OPEN:
            return
        if self._elapsed_since_open_ms() >= self.config.reset_timeout_ms:
            self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        """Apply a state change (called under lock)."""
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state

        if new_state == CircuitState.CLOSED:
            self._consecutive_failures = 0
            self._opened_at = None
            self._trial_in_flight = False
            logger.info("Circuit closed", circuit_name=self.name)
        elif new_state == CircuitState.HALF_OPEN:
            self._trial_in_flight = False
            logger.info("Circuit half-open", circuit_name=self.name)
        elif new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
            self._trial_in_flight = False
            logger.warning(
                "Circuit open",
                circuit_name=self.name,
                previous_state=old_state.value,
                consecutive_failures=self._consecutive_failures,
                reset_timeout_ms=self.config.reset_timeout_ms,
            )

        circuit_state_transitions_total.labels(
            breaker=self.name, state=new_state.value
        ).inc()

    def retry_after_ms(self) -> int:
        """Milliseconds until an open circuit admits a trial call (0 otherwise)."""
        with self._lock:
            if self._state != CircuitState.OPEN:
                return 0
            remaining = self.config.reset_timeout_ms - self._elapsed_since_open_ms()
            return max(0, int(remaining))

    def before_call(self) -> bool:
        """
        Gate a call.

        Returns normally when the call may proceed. In HALF_OPEN the first
        caller takes the single trial slot; everybody else is rejected until
        the trial reports back.

        Returns:
            True if this call took the half-open trial slot

        Raises:
            CircuitOpenError: If the circuit rejects the call
        """
        with self._lock:
            self._check_reset_timeout()

            if self._state == CircuitState.CLOSED:
                return False

            if self._state == CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                logger.debug("Circuit admitting trial call", circuit_name=self.name)
                return True

            if self._state == CircuitState.OPEN:
                remaining = self.config.reset_timeout_ms - self._elapsed_since_open_ms()
                retry_after = max(0, int(remaining))
            else:
                retry_after = 0

        circuit_rejections_total.labels(breaker=self.name).inc()
        logger.debug(
            "Circuit rejected call",
            circuit_name=self.name,
            retry_after_ms=retry_after,
        )
        raise CircuitOpenError(self.name, retry_after)

    def record_success(self) -> None:
        """Report a successful call: closes a half-open circuit, resets the count."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED)
            elif self._state == CircuitState.CLOSED:
                self._consecutive_failures = 0

    def record_failure(self, exc: Optional[BaseException] = None) -> None:
        """
        Report a failed call.

        In CLOSED the count grows and the circuit opens at the threshold. A
        failed half-open trial reopens the circuit and restarts the cool-down.
        """
        with self._lock:
            self._consecutive_failures += 1
            logger.debug(
                "Circuit breaker failure recorded",
                circuit_name=self.name,
                circuit_state=self._state.value,
                consecutive_failures=self._consecutive_failures,
                threshold_failures=self.config.threshold_failures,
                error_type=type(exc).__name__ if exc is not None else None,
            )

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._consecutive_failures >= self.config.threshold_failures
            ):
                self._transition_to(CircuitState.OPEN)

    def release_trial(self) -> None:
        """
        Give back an abandoned half-open trial slot.

        Used when the trial call never produced an outcome (e.g. its task was
        cancelled). The circuit stays HALF_OPEN and the next caller becomes
        the trial; nothing is counted as success or failure.
        """
        with self._lock:
            if self._state == CircuitState.HALF_OPEN and self._trial_in_flight:
                self._trial_in_flight = False
                logger.debug("Circuit trial slot released", circuit_name=self.name)

    def reset(self) -> None:
        """Force the circuit closed."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._consecutive_failures = 0

    def snapshot(self) -> CircuitBreakerSnapshot:
        with self._lock:
            self._check_reset_timeout()
            return CircuitBreakerSnapshot(
                name=self.name,
                state=self._state,
                consecutive_failures=self._consecutive_failures,
                opened_at=self._opened_at,
                threshold_failures=self.config.threshold_failures,
                reset_timeout_ms=self.config.reset_timeout_ms,
            )

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"name={self.name!r}, "
            f"state={self._state.value}, "
            f"failures={self._consecutive_failures})"
        )


class CircuitBreakerRegistry:
    """
    Process-wide mapping of resource name to CircuitBreaker.

    Build one at startup and pass it to every JobPoller / provider client.
    Lookups are idempotent: the first ``get_or_create`` for a name creates
    the breaker, later calls return that same instance.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            clock: Monotonic clock handed to every breaker created here
        """
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
    ) -> CircuitBreaker:
        """
        Return the breaker for ``name``, creating it on first use.

        ``config`` only applies when the breaker is created; an existing
        breaker keeps the configuration it was created with.
        """
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(name, config, clock=self._clock)
                self._breakers[name] = breaker
                logger.debug(
                    "Circuit breaker registered",
                    circuit_name=name,
                    threshold_failures=breaker.config.threshold_failures,
                    reset_timeout_ms=breaker.config.reset_timeout_ms,
                )
            return breaker

    def get(self, name: str) -> Optional[CircuitBreaker]:
        """Return the breaker for ``name`` without creating one."""
        with self._lock:
            return self._breakers.get(name)

    def _sorted_breakers(self) -> list[CircuitBreaker]:
        """Copy of the registered breakers, ordered by name."""
        with self._lock:
            return [self._breakers[name] for name in sorted(self._breakers)]

    def names(self) -> list[str]:
        return [breaker.name for breaker in self._sorted_breakers()]

    def snapshots(self) -> list[CircuitBreakerSnapshot]:
        # breaker locks are taken outside the registry lock
        return [breaker.snapshot() for breaker in self._sorted_breakers()]

    def reset_all(self) -> None:
        """Close every registered breaker."""
        for breaker in self._sorted_breakers():
            breaker.reset()

    def clear(self) -> None:
        """Forget every registered breaker."""
        with self._lock:
            self._breakers.clear()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._breakers

    def __len__(self) -> int:
        with self._lock:
            return len(self._breakers)

    def __iter__(self) -> Iterator[CircuitBreaker]:
        return iter(self._sorted_breakers())
