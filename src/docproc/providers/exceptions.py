"""
Custom exceptions for the provider client layer.

HTTP and payload failures are mapped onto these types so the retry
executor can tell transient faults (retried) from client errors (surfaced
immediately). Transient types also subclass TransientCheckError, which is
what the job execution layer understands.
"""

from typing import Any, Optional

from docproc.resilience.exceptions import JobExecutionError, TransientCheckError


class ProviderError(JobExecutionError):
    """
    Base exception for all provider client errors.

    Not retryable unless a subclass says otherwise.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code


class ProviderConnectionError(TransientCheckError, ProviderError):
    """
    Raised when the provider cannot be reached.

    DNS failures, refused or reset connections. Retried with backoff.
    """
    pass


class ProviderTimeoutError(ProviderConnectionError):
    """
    Raised when a request exceeds the HTTP timeout.

    Separate from generic connection errors so callers can tune timeouts
    independently of retry counts.
    """
    pass


class ProviderServerError(TransientCheckError, ProviderError):
    """
    Raised on HTTP 5xx and 408 responses.

    Usually a temporary provider outage; retried with backoff.
    """
    pass


class ProviderRateLimitError(TransientCheckError, ProviderError):
    """
    Raised on HTTP 429.

    Carries ``retry_after_ms`` from the Retry-After header when present,
    which overrides the computed backoff delay.
    """
    pass


class ProviderRequestError(ProviderError):
    """
    Raised on HTTP 4xx (other than 408/429) and on invalid input.

    Bad credentials, unknown job id, malformed request. Retrying would
    produce the same answer, so it is surfaced immediately.
    """
    pass


class ProviderResponseError(ProviderError):
    """
    Raised when a 2xx response cannot be interpreted.

    Invalid JSON, missing job id, terminal payload without content.
    """
    pass


class UnsupportedFormatError(ProviderError):
    """
    Raised when the document's MIME type is not accepted by the endpoint.

    The message names the supported formats and, where one exists, the
    conversion to apply.
    """
    pass
