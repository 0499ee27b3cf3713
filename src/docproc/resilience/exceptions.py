"""
Error taxonomy of the job execution layer.

Every failure path of the retry executor and the job poller ends in one of
these exceptions. Each carries the job id (when known) and a ``details``
dict with enough context (last status, attempt count, elapsed time) for the
caller to log or surface it.
"""

from typing import Any, Optional


class JobExecutionError(Exception):
    """
    Base exception for the job execution layer.

    Catch this to handle any retry, breaker or polling failure with a single
    except clause.
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        job_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.job_id = job_id
        if job_id is not None:
            self.details.setdefault("job_id", job_id)

    def attach_job(self, job_id: str, **context: Any) -> None:
        """Record the job this error surfaced from, keeping existing values."""
        if self.job_id is None:
            self.job_id = job_id
        self.details.setdefault("job_id", job_id)
        for key, value in context.items():
            self.details.setdefault(key, value)


class TransientCheckError(JobExecutionError):
    """
    A single attempt failed for a reason that may go away on its own.

    Network errors, timeouts, HTTP 408/429/5xx. Recovered locally by the
    retry executor unless retries run out.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
        retry_after_ms: Optional[int] = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code
        self.retry_after_ms = retry_after_ms
        if status_code is not None:
            self.details.setdefault("status_code", status_code)


class RetryExhaustedError(JobExecutionError):
    """
    Raised when every attempt of one operation failed.

    The job poller treats this as fatal and does not retry on top of it.
    """

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempt(s): "
            f"{type(last_error).__name__}: {last_error}",
            details={
                "operation": operation,
                "attempts": attempts,
                "last_error_type": type(last_error).__name__,
            },
        )


class CircuitOpenError(JobExecutionError):
    """
    Raised without attempting the operation while a breaker is open.

    Signals that the endpoint as a whole is unhealthy. No retry attempt is
    consumed.
    """

    def __init__(self, name: str, retry_after_ms: int = 0):
        self.name = name
        self.retry_after_ms = retry_after_ms
        super().__init__(
            f"Circuit breaker '{name}' is open (retry after {retry_after_ms}ms)",
            details={"circuit_name": name, "retry_after_ms": retry_after_ms},
        )


class JobFailedError(JobExecutionError):
    """
    The external job reported a terminal failure status.

    Never retried: the job has already failed.
    """

    def __init__(
        self,
        job_id: str,
        reason: str,
        status: str,
        attempts: int,
        elapsed_ms: int,
    ):
        self.reason = reason
        self.status = status
        self.attempts = attempts
        self.elapsed_ms = elapsed_ms
        super().__init__(
            f"Job {job_id} failed: {reason}",
            details={
                "status": status,
                "attempts": attempts,
                "elapsed_ms": elapsed_ms,
            },
            job_id=job_id,
        )


class PollTimeoutError(JobExecutionError):
    """
    The attempt budget ran out while the job was still non-terminal.

    The job is indeterminate, not failed: it may still complete out-of-band.
    """

    def __init__(
        self,
        job_id: str,
        attempts: int,
        budget_ms: int,
        elapsed_ms: int,
        last_status: Optional[str] = None,
    ):
        self.attempts = attempts
        self.budget_ms = budget_ms
        self.elapsed_ms = elapsed_ms
        self.last_status = last_status
        super().__init__(
            f"Job {job_id} timed out after {attempts} attempts "
            f"(budget {budget_ms}ms, elapsed {elapsed_ms}ms, last status: {last_status!r})",
            details={
                "attempts": attempts,
                "budget_ms": budget_ms,
                "elapsed_ms": elapsed_ms,
                "last_status": last_status,
            },
            job_id=job_id,
        )
