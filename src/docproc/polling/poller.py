"""
Generic job poller.

Drives an external job id from submission to a terminal state:

    submitted -> polling -> {succeeded, failed, timed_out}

Each status check goes through the RetryExecutor (and, when configured, a
circuit breaker shared by everything polling the same target). The poller
itself never retries a failed check: a RetryExhaustedError or
CircuitOpenError from a check ends the poll.

Two budgets compose: the retry policy bounds the time spent on one check,
``max_attempts`` bounds the number of checks. Slow transient failures can
therefore consume the whole budget within a few real polls.

Usage:
    poller = JobPoller(registry=registry)
    payload = await poller.poll_until_complete(
        job_id,
        check_status,
        PollOptions(max_attempts=60, poll_interval_ms=2000),
        classifier=REDUCTO_CLASSIFIER,
        target="reducto",
    )
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

import structlog

from docproc.models.enums import JobState
from docproc.models.job_models import JobFailed, JobStatus, JobSucceeded
from docproc.models.policy_models import PollOptions
from docproc.monitoring.metrics import (
    job_poll_duration_seconds,
    poll_checks_total,
    poll_outcomes_total,
)
from docproc.polling.classifier import DEFAULT_CLASSIFIER, StatusClassifier
from docproc.resilience.circuit_breaker import CircuitBreakerRegistry
from docproc.resilience.exceptions import (
    CircuitOpenError,
    JobFailedError,
    PollTimeoutError,
    RetryExhaustedError,
)
from docproc.resilience.executor import RetryExecutor, RetryPredicate

logger = structlog.get_logger(__name__)

CheckStatus = Callable[[], Awaitable[Union[JobStatus, Mapping[str, Any]]]]
StatusObserver = Callable[[JobStatus, int], Any]


class JobPoller:
    """
    Polls external jobs until they reach a terminal state.

    A poller is stateless between calls; one instance can drive many jobs
    concurrently as separate asyncio tasks. The only shared mutable state is
    the circuit breaker registry, which tracks endpoint health rather than
    the health of any single job.

    Attributes:
        registry: Circuit breaker registry used when PollOptions.breaker is set
        executor: Retry executor wrapping every status check
    """

    def __init__(
        self,
        executor: Optional[RetryExecutor] = None,
        registry: Optional[CircuitBreakerRegistry] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize job poller.

        Args:
            executor: Retry executor (default: one sharing this poller's sleep)
            registry: Breaker registry (default: a private registry)
            sleep: Awaitable sleep in seconds, used between checks
            clock: Monotonic clock in seconds, used for elapsed time
        """
        self.sleep = sleep
        self.clock = clock
        self.executor = executor or RetryExecutor(sleep=sleep)
        self.registry = registry if registry is not None else CircuitBreakerRegistry()

    def _elapsed_ms(self, started: float) -> int:
        return int((self.clock() - started) * 1000)

    def _finish(self, target: str, outcome: str, started: float) -> None:
        poll_outcomes_total.labels(target=target, outcome=outcome).inc()
        job_poll_duration_seconds.labels(target=target, outcome=outcome).observe(
            max(0.0, self.clock() - started)
        )

    async def poll_until_complete(
        self,
        job_id: str,
        check_status: CheckStatus,
        options: PollOptions,
        *,
        classifier: StatusClassifier = DEFAULT_CLASSIFIER,
        target: str = "job",
        retry_if: Optional[RetryPredicate] = None,
        on_status: Optional[StatusObserver] = None,
    ) -> dict[str, Any]:
        """
        Poll ``job_id`` until success, failure or budget exhaustion.

        Args:
            job_id: Opaque provider job id
            check_status: Coroutine function returning a JobStatus (a plain
                payload mapping is converted with JobStatus.from_payload)
            options: Attempt budget, interval, retry and breaker policy
            classifier: Provider status vocabulary
            target: Polling target name; the breaker is "<target>:polling"
            retry_if: Retry predicate forwarded to the executor
            on_status: Observer called with every JobStatus and its 1-based
                attempt number

        Returns:
            The raw payload of the terminal success status

        Raises:
            JobFailedError: The job reported a terminal failure
            PollTimeoutError: max_attempts checks without a terminal state
            RetryExhaustedError: A status check failed on every retry
            CircuitOpenError: The polling target's breaker is open
        """
        breaker = None
        if options.breaker is not None:
            breaker = self.registry.get_or_create(f"{target}:polling", options.breaker)

        log = logger.bind(job_id=job_id, target=target)
        state = JobState.SUBMITTED
        started = self.clock()
        interval_s = options.poll_interval_ms / 1000.0
        last_status: Optional[str] = None

        log.info(
            "Polling job",
            state=state.value,
            max_attempts=options.max_attempts,
            poll_interval_ms=options.poll_interval_ms,
            check_before_first_wait=options.check_before_first_wait,
            breaker=breaker.name if breaker else None,
        )
        state = JobState.POLLING

        for attempt in range(options.max_attempts):
            if attempt > 0 or not options.check_before_first_wait:
                await self.sleep(interval_s)

            try:
                result = await self.executor.execute(
                    check_status,
                    options.retry,
                    breaker,
                    operation_name=f"{target}:status",
                    retry_if=retry_if,
                )
            except (RetryExhaustedError, CircuitOpenError) as e:
                elapsed_ms = self._elapsed_ms(started)
                e.attach_job(
                    job_id,
                    poll_attempt=attempt + 1,
                    elapsed_ms=elapsed_ms,
                    last_status=last_status,
                )
                self._finish(target, "error", started)
                log.error(
                    "Status check failed, abandoning poll",
                    state=state.value,
                    poll_attempt=attempt + 1,
                    elapsed_ms=elapsed_ms,
                    last_status=last_status,
                    error_type=type(e).__name__,
                )
                raise

            status = result if isinstance(result, JobStatus) else JobStatus.from_payload(job_id, result)
            poll_checks_total.labels(target=target).inc()
            last_status = status.status

            log.debug(
                "Job status",
                attempt=attempt + 1,
                max_attempts=options.max_attempts,
                status=status.status,
            )
            if on_status is not None:
                on_status(status, attempt + 1)

            outcome = classifier.classify(status)
            if isinstance(outcome, JobSucceeded):
                state = JobState.SUCCEEDED
                self._finish(target, state.value, started)
                log.info(
                    "Job succeeded",
                    state=state.value,
                    attempts=attempt + 1,
                    elapsed_ms=self._elapsed_ms(started),
                )
                return outcome.payload

            if isinstance(outcome, JobFailed):
                state = JobState.FAILED
                elapsed_ms = self._elapsed_ms(started)
                self._finish(target, state.value, started)
                log.warning(
                    "Job failed",
                    state=state.value,
                    attempts=attempt + 1,
                    status=status.status,
                    reason=outcome.reason,
                )
                raise JobFailedError(
                    job_id=job_id,
                    reason=outcome.reason,
                    status=status.status,
                    attempts=attempt + 1,
                    elapsed_ms=elapsed_ms,
                )

        state = JobState.TIMED_OUT
        elapsed_ms = self._elapsed_ms(started)
        self._finish(target, state.value, started)
        log.warning(
            "Job polling timed out",
            state=state.value,
            attempts=options.max_attempts,
            budget_ms=options.budget_ms,
            elapsed_ms=elapsed_ms,
            last_status=last_status,
        )
        raise PollTimeoutError(
            job_id=job_id,
            attempts=options.max_attempts,
            budget_ms=options.budget_ms,
            elapsed_ms=elapsed_ms,
            last_status=last_status,
        )


async def poll_until_complete(
    job_id: str,
    check_status: CheckStatus,
    options: PollOptions,
    **kwargs: Any,
) -> dict[str, Any]:
    """
    One-off poll with a throwaway JobPoller.

    The poller gets a private breaker registry, so breaker state is not
    shared with anything else. Long-lived callers should build one JobPoller
    around the application registry instead.
    """
    return await JobPoller().poll_until_complete(job_id, check_status, options, **kwargs)
