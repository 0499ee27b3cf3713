"""
Retry executor: bounded retries with backoff and circuit-breaker gating.

Wraps one fallible async operation. The composition order per attempt is
fixed:

    1. breaker gate (CircuitOpenError, no attempt consumed)
    2. invoke the operation
    3. report the outcome to the breaker, exactly once
    4. on failure: give up (RetryExhaustedError) or wait and go back to 1

Usage:
    executor = RetryExecutor()
    payload = await executor.execute(
        fetch_status,
        RetryConfig(max_retries=2),
        breaker=registry.get_or_create("reducto:polling"),
        operation_name="reducto:status",
    )
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from docproc.models.policy_models import RetryConfig
from docproc.monitoring.metrics import retry_attempts_total
from docproc.resilience.backoff import compute_delay_ms
from docproc.resilience.circuit_breaker import CircuitBreaker
from docproc.resilience.exceptions import RetryExhaustedError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
RetryPredicate = Callable[[BaseException], bool]
RetryHook = Callable[[int, BaseException, float], Any]


def is_retryable_error(exc: BaseException) -> bool:
    """
    Default classification used by provider clients.

    Exceptions may declare ``retryable = False`` (e.g. HTTP 4xx client
    errors) to stop the retry loop early. Everything else is retried.
    """
    return bool(getattr(exc, "retryable", True))


def _retry_after_override(exc: BaseException) -> Optional[int]:
    retry_after = getattr(exc, "retry_after_ms", None)
    if isinstance(retry_after, (int, float)) and retry_after > 0:
        return int(retry_after)
    return None


class RetryExecutor:
    """
    Runs async operations with bounded retries.

    The executor holds no per-call state and can be shared by any number of
    concurrent callers.

    Attributes:
        sleep: Awaitable sleep taking seconds (``asyncio.sleep`` by default)
        rng: Random source for configured jitter
    """

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.sleep = sleep
        self.rng = rng

    async def execute(
        self,
        operation: Operation[T],
        config: RetryConfig,
        breaker: Optional[CircuitBreaker] = None,
        *,
        operation_name: str = "operation",
        retry_if: Optional[RetryPredicate] = None,
        on_retry: Optional[RetryHook] = None,
    ) -> T:
        """
        Execute ``operation`` with up to ``config.max_retries`` retries.

        Args:
            operation: Zero-argument coroutine function
            config: Retry configuration
            breaker: Optional circuit breaker gating every attempt
            operation_name: Name used in logs, metrics and errors
            retry_if: Predicate deciding whether a failure may be retried
                (default: every failure is retried)
            on_retry: Hook called as ``on_retry(attempt, error, delay_ms)``
                before each wait; may be sync or async

        Returns:
            The operation's result

        Raises:
            CircuitOpenError: The breaker rejected an attempt
            RetryExhaustedError: Every permitted attempt failed (chained
                from the last failure)
        """
        attempt_index = 0

        while True:
            took_trial = breaker.before_call() if breaker is not None else False

            try:
                result = await operation()
            except Exception as e:
                if breaker is not None:
                    breaker.record_failure(e)

                attempts_made = attempt_index + 1
                retryable = retry_if(e) if retry_if is not None else True

                if attempts_made > config.max_retries or not retryable:
                    retry_attempts_total.labels(
                        operation=operation_name, outcome="exhausted"
                    ).inc()
                    logger.warning(
                        "Operation failed, retries exhausted",
                        operation=operation_name,
                        attempts=attempts_made,
                        max_retries=config.max_retries,
                        retryable=retryable,
                        error_type=type(e).__name__,
                        error=str(e)[:200],
                    )
                    raise RetryExhaustedError(operation_name, attempts_made, e) from e

                delay_ms = compute_delay_ms(attempt_index, config, self.rng)
                override = _retry_after_override(e)
                if override is not None:
                    delay_ms = override
                    if config.max_delay_ms is not None:
                        delay_ms = min(delay_ms, config.max_delay_ms)

                retry_attempts_total.labels(operation=operation_name, outcome="retry").inc()
                logger.info(
                    "Operation failed, retrying",
                    operation=operation_name,
                    attempt=attempts_made,
                    max_retries=config.max_retries,
                    delay_ms=delay_ms,
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                )

                if on_retry is not None:
                    hook_result = on_retry(attempts_made, e, delay_ms)
                    if asyncio.iscoroutine(hook_result):
                        await hook_result

                await self.sleep(delay_ms / 1000.0)
                attempt_index += 1
                continue
            except BaseException:
                # cancelled mid-call: no outcome to report, free the trial slot
                if took_trial:
                    breaker.release_trial()
                raise

            if breaker is not None:
                breaker.record_success()
            retry_attempts_total.labels(operation=operation_name, outcome="success").inc()
            if attempt_index > 0:
                logger.info(
                    "Operation succeeded after retry",
                    operation=operation_name,
                    attempts=attempt_index + 1,
                )
            return result


async def execute_with_retry(
    operation: Operation[T],
    config: RetryConfig,
    breaker: Optional[CircuitBreaker] = None,
    **kwargs: Any,
) -> T:
    """Run ``operation`` through a default RetryExecutor (real asyncio sleep)."""
    return await RetryExecutor().execute(operation, config, breaker, **kwargs)
