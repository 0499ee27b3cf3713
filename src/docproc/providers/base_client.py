"""
Abstract base client for document-processing providers.

Defines the interface every provider adapter (Surya, Reducto, Unsiloed)
implements, and the plumbing they share: a pooled httpx AsyncClient, HTTP
error mapping onto the provider exception taxonomy, document loading, and
job polling through the shared JobPoller / CircuitBreakerRegistry.
"""

import json
from abc import ABC, abstractmethod
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Awaitable, Optional

import httpx
import structlog

from docproc.models.document_models import DocumentIR, DocumentSource
from docproc.models.job_models import JobStatus
from docproc.models.policy_models import PollOptions
from docproc.polling.classifier import StatusClassifier
from docproc.polling.poller import JobPoller
from docproc.providers.exceptions import (
    ProviderConnectionError,
    ProviderRateLimitError,
    ProviderRequestError,
    ProviderResponseError,
    ProviderServerError,
    ProviderTimeoutError,
)
from docproc.providers.files import (
    LoadedDocument,
    decode_base64_document,
    default_filename,
    filename_from_url,
    mime_type_from_filename,
)
from docproc.resilience.circuit_breaker import CircuitBreakerRegistry
from docproc.resilience.executor import is_retryable_error

logger = structlog.get_logger(__name__)

DEFAULT_MAX_FILE_SIZE = 100 * 1024 * 1024


def parse_retry_after_ms(value: Optional[str]) -> Optional[int]:
    """
    Parse a Retry-After header (delta-seconds or HTTP-date) into milliseconds.

    Values outside (0, 3600) seconds are ignored.
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        seconds = float(value)
    else:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    if 0 < seconds < 3600:
        return int(seconds * 1000)
    return None


class BaseProviderClient(ABC):
    """
    Abstract base class for provider clients.

    Responsibilities:
    - Submit documents to the provider API
    - Hand asynchronous job ids to the JobPoller
    - Convert terminal payloads into DocumentIR

    Does NOT handle:
    - Retry/backoff/breaker logic (that's RetryExecutor's job)
    - Poll loop state transitions (that's JobPoller's job)

    Subclasses set ``provider`` (used for log fields and breaker names such
    as "reducto:polling") and the polling defaults matching their API.
    """

    provider: ClassVar[str] = "provider"
    DEFAULT_ENDPOINT: ClassVar[str] = ""
    DEFAULT_MAX_ATTEMPTS: ClassVar[int] = 150
    CHECK_BEFORE_FIRST_WAIT: ClassVar[bool] = True

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 120,
        poll_options: Optional[PollOptions] = None,
        registry: Optional[CircuitBreakerRegistry] = None,
        poller: Optional[JobPoller] = None,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        connection_limits: Optional[httpx.Limits] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize base client.

        Args:
            endpoint: Provider base URL (default: DEFAULT_ENDPOINT)
            api_key: Provider API key
            timeout: Per-request HTTP timeout in seconds
            poll_options: Polling policy (default: provider defaults)
            registry: Shared circuit breaker registry
            poller: Shared JobPoller (default: one built on ``registry``)
            max_file_size: Upper bound for uploaded documents in bytes
            connection_limits: httpx pool limits
            transport: httpx transport override (tests use httpx.MockTransport)
        """
        self.endpoint = (endpoint or self.DEFAULT_ENDPOINT).rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_file_size = max_file_size
        self.poll_options = poll_options or self.default_poll_options()

        if poller is not None:
            self.poller = poller
            self.registry = poller.registry
        else:
            self.registry = registry if registry is not None else CircuitBreakerRegistry()
            self.poller = JobPoller(registry=self.registry)

        if connection_limits is None:
            connection_limits = httpx.Limits(
                max_keepalive_connections=5,
                max_connections=10,
                keepalive_expiry=30.0,
            )
        self._connection_limits = connection_limits
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(
            "Initialized provider client",
            provider=self.provider,
            endpoint=self.endpoint,
            timeout=timeout,
            max_attempts=self.poll_options.max_attempts,
            poll_interval_ms=self.poll_options.poll_interval_ms,
            breaker_enabled=self.poll_options.breaker is not None,
        )

    @classmethod
    def default_poll_options(cls) -> PollOptions:
        return PollOptions(
            max_attempts=cls.DEFAULT_MAX_ATTEMPTS,
            check_before_first_wait=cls.CHECK_BEFORE_FIRST_WAIT,
        )

    @abstractmethod
    def _auth_headers(self) -> dict[str, str]:
        """Authentication headers for provider API calls."""

    @abstractmethod
    async def parse_to_ir(self, source: DocumentSource) -> DocumentIR:
        """
        Submit a document, wait for the job and return its DocumentIR.

        Raises:
            ProviderError subclasses: Submission or payload failures
            JobFailedError / PollTimeoutError: Job did not succeed
            RetryExhaustedError / CircuitOpenError: Status checks failed
        """

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=self._connection_limits,
                follow_redirects=True,
                transport=self._transport,
            )
            logger.debug("Created new httpx AsyncClient", provider=self.provider)
        return self._client

    async def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        authenticated: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send one HTTP request and map failures onto provider exceptions.

        Raises:
            ProviderTimeoutError: Request timed out
            ProviderConnectionError: Network-level failure
            ProviderRateLimitError: HTTP 429
            ProviderServerError: HTTP 408 or 5xx
            ProviderRequestError: Any other non-2xx status
        """
        headers = dict(kwargs.pop("headers", None) or {})
        if authenticated:
            headers.update(self._auth_headers())

        try:
            client = await self._get_client()
            response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(
                "Provider request timeout",
                provider=self.provider,
                operation=operation,
                timeout=self.timeout,
                error=str(e),
            )
            raise ProviderTimeoutError(
                f"{self.provider} {operation} timed out after {self.timeout}s",
                details={"provider": self.provider, "operation": operation},
            ) from e
        except httpx.TransportError as e:
            logger.warning(
                "Provider network error",
                provider=self.provider,
                operation=operation,
                error=str(e),
            )
            raise ProviderConnectionError(
                f"{self.provider} {operation} network error: {e}",
                details={
                    "provider": self.provider,
                    "operation": operation,
                    "error_type": type(e).__name__,
                },
            ) from e

        if response.is_success:
            return response

        status_code = response.status_code
        error_text = response.text[:500]
        details = {"provider": self.provider, "operation": operation, "error": error_text}
        message = f"{self.provider} {operation} failed: {status_code} {error_text}".rstrip()

        logger.warning(
            "Provider HTTP error",
            provider=self.provider,
            operation=operation,
            status_code=status_code,
            error_text=error_text,
        )

        if status_code == 429:
            raise ProviderRateLimitError(
                message,
                details=details,
                status_code=status_code,
                retry_after_ms=parse_retry_after_ms(response.headers.get("Retry-After")),
            )
        if status_code == 408 or status_code >= 500:
            raise ProviderServerError(message, details=details, status_code=status_code)
        raise ProviderRequestError(message, details=details, status_code=status_code)

    async def _request_json(self, method: str, url: str, *, operation: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and decode a JSON object body."""
        response = await self._request(method, url, operation=operation, **kwargs)
        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise ProviderResponseError(
                f"Invalid JSON response from {self.provider} {operation}",
                details={"parse_error": str(e), "operation": operation},
            ) from e
        if not isinstance(data, dict):
            raise ProviderResponseError(
                f"Expected a JSON object from {self.provider} {operation}, got {type(data).__name__}",
                details={"operation": operation},
            )
        return data

    async def load_document(self, source: DocumentSource) -> LoadedDocument:
        """
        Fetch a URL source or decode a base64 source.

        Raises:
            ProviderRequestError: Unsupported URL scheme, oversized document,
                invalid base64 or a failed download
        """
        if source.url:
            scheme = httpx.URL(source.url).scheme
            if scheme not in ("http", "https"):
                raise ProviderRequestError(
                    f"Unsupported URL scheme: {scheme!r}",
                    details={"url": source.url},
                )
            response = await self._request(
                "GET", source.url, operation="download", authenticated=False
            )
            data = response.content
            if len(data) > self.max_file_size:
                raise ProviderRequestError(
                    f"Document too large: {len(data)} bytes (limit {self.max_file_size})",
                    details={"size": len(data), "max_size": self.max_file_size},
                )
            filename = filename_from_url(source.url)
            return LoadedDocument(
                data=data,
                filename=filename,
                mime_type=mime_type_from_filename(filename, default="application/pdf"),
            )

        data, mime_type = decode_base64_document(source.base64 or "", self.max_file_size)
        filename = default_filename(mime_type)
        return LoadedDocument(
            data=data,
            filename=filename,
            mime_type=mime_type or mime_type_from_filename(filename),
        )

    async def poll_job(
        self,
        job_id: str,
        check_status: Callable[[], Awaitable[JobStatus]],
        classifier: StatusClassifier,
        options: Optional[PollOptions] = None,
    ) -> dict[str, Any]:
        """Drive ``job_id`` to completion; the breaker is "<provider>:polling"."""
        return await self.poller.poll_until_complete(
            job_id,
            check_status,
            options or self.poll_options,
            classifier=classifier,
            target=self.provider,
            retry_if=is_retryable_error,
        )

    async def close(self):
        """Close the HTTP client connection."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Closed provider client connection", provider=self.provider)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"endpoint={self.endpoint}, "
            f"timeout={self.timeout}s)"
        )
