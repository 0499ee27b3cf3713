"""
Resilience primitives for long-running provider jobs.

Main Components:
    - compute_delay_ms: Backoff policy (pure)
    - CircuitBreaker / CircuitBreakerRegistry: Named three-state breakers
    - RetryExecutor: Bounded retries with backoff and breaker gating
    - Exceptions: TransientCheckError, RetryExhaustedError, CircuitOpenError,
      JobFailedError, PollTimeoutError

Usage:
    >>> from docproc.resilience import RetryExecutor, CircuitBreakerRegistry
    >>> registry = CircuitBreakerRegistry()
    >>> breaker = registry.get_or_create("surya:polling")
    >>> result = await RetryExecutor().execute(op, RetryConfig(max_retries=2), breaker)
"""

from docproc.resilience.backoff import compute_delay_ms
from docproc.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitBreakerSnapshot,
)
from docproc.resilience.exceptions import (
    CircuitOpenError,
    JobExecutionError,
    JobFailedError,
    PollTimeoutError,
    RetryExhaustedError,
    TransientCheckError,
)
from docproc.resilience.executor import (
    RetryExecutor,
    execute_with_retry,
    is_retryable_error,
)

__all__ = [
    "compute_delay_ms",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitBreakerSnapshot",
    "RetryExecutor",
    "execute_with_retry",
    "is_retryable_error",
    "JobExecutionError",
    "TransientCheckError",
    "RetryExhaustedError",
    "CircuitOpenError",
    "JobFailedError",
    "PollTimeoutError",
]
