"""
Configuration settings for docproc.

All settings are loaded from environment variables with sensible defaults.
Use .env file for local development.
"""

from typing import Any, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from docproc.models.policy_models import CircuitBreakerConfig, PollOptions, RetryConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Application ===
    APP_NAME: str = "docproc"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # === HTTP ===
    REQUEST_TIMEOUT: int = 120  # seconds, document processing is slow
    MAX_FILE_SIZE_BYTES: int = 100 * 1024 * 1024

    # === Polling ===
    POLL_MAX_ATTEMPTS: int = 150  # 5 minutes at 2s intervals
    POLL_INTERVAL_MS: int = 2000
    POLL_CHECK_BEFORE_FIRST_WAIT: bool = True

    # === Retry (per status check) ===
    POLL_MAX_RETRIES: int = 0
    RETRY_DELAY_MS: int = 1000
    USE_EXPONENTIAL_BACKOFF: bool = True
    RETRY_MAX_DELAY_MS: Optional[int] = None  # None = uncapped

    # === Circuit Breaker ===
    BREAKER_THRESHOLD_FAILURES: Optional[int] = None  # None = breaker disabled
    BREAKER_RESET_TIMEOUT_MS: int = 30000

    # === Surya (Datalab) ===
    SURYA_ENDPOINT: str = "https://www.datalab.to/api/v1/ocr"
    SURYA_API_KEY: Optional[str] = None
    SURYA_MAX_ATTEMPTS: int = 30

    # === Marker (Datalab) ===
    MARKER_ENDPOINT: str = "https://www.datalab.to/api/v1/marker"
    MARKER_API_KEY: Optional[str] = None
    MARKER_MAX_ATTEMPTS: int = 60

    # === Reducto ===
    REDUCTO_ENDPOINT: str = "https://platform.reducto.ai"
    REDUCTO_API_KEY: Optional[str] = None
    REDUCTO_MAX_ATTEMPTS: int = 120  # 4 minutes at 2s intervals

    # === Unsiloed ===
    UNSILOED_ENDPOINT: str = "https://prod.visionapi.unsiloed.ai"
    UNSILOED_API_KEY: Optional[str] = None
    UNSILOED_MAX_ATTEMPTS: int = 150

    # === Monitoring ===
    PROMETHEUS_ENABLED: bool = True  # expose /metrics via init_runtime
    PROMETHEUS_PORT: int = 9108
    PROMETHEUS_ADDR: str = "0.0.0.0"

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.POLL_MAX_RETRIES,
            retry_delay_ms=self.RETRY_DELAY_MS,
            use_exponential_backoff=self.USE_EXPONENTIAL_BACKOFF,
            max_delay_ms=self.RETRY_MAX_DELAY_MS,
        )

    def breaker_config(self) -> Optional[CircuitBreakerConfig]:
        """Breaker config, or None when no threshold is configured."""
        if self.BREAKER_THRESHOLD_FAILURES is None:
            return None
        return CircuitBreakerConfig(
            threshold_failures=self.BREAKER_THRESHOLD_FAILURES,
            reset_timeout_ms=self.BREAKER_RESET_TIMEOUT_MS,
        )

    def poll_options(self, **overrides: Any) -> PollOptions:
        """
        Build PollOptions from settings.

        Keyword overrides win over settings, e.g.
        ``settings.poll_options(max_attempts=30, check_before_first_wait=False)``.
        """
        values: dict[str, Any] = {
            "max_attempts": self.POLL_MAX_ATTEMPTS,
            "poll_interval_ms": self.POLL_INTERVAL_MS,
            "retry": self.retry_config(),
            "breaker": self.breaker_config(),
            "check_before_first_wait": self.POLL_CHECK_BEFORE_FIRST_WAIT,
        }
        values.update(overrides)
        return PollOptions(**values)


# Global settings instance
settings = Settings()
