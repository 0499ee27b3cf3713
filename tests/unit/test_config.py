"""
Unit tests for Settings and the policy builders.
"""

import pytest
import structlog

from docproc.config import Settings
from docproc.logging_config import configure_logging, job_log_context
from docproc.models.policy_models import CircuitBreakerConfig, RetryConfig


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.POLL_MAX_ATTEMPTS == 150
    assert settings.POLL_INTERVAL_MS == 2000
    assert settings.BREAKER_THRESHOLD_FAILURES is None
    assert settings.REDUCTO_ENDPOINT == "https://platform.reducto.ai"


def test_env_override(monkeypatch):
    monkeypatch.setenv("POLL_MAX_ATTEMPTS", "12")
    monkeypatch.setenv("breaker_threshold_failures", "4")

    settings = Settings(_env_file=None)

    assert settings.POLL_MAX_ATTEMPTS == 12
    assert settings.BREAKER_THRESHOLD_FAILURES == 4


def test_retry_config(test_settings):
    assert test_settings.retry_config() == RetryConfig(max_retries=0, retry_delay_ms=50)


def test_breaker_disabled_without_threshold(test_settings):
    assert test_settings.breaker_config() is None
    assert test_settings.poll_options().breaker is None


def test_breaker_config():
    settings = Settings(_env_file=None, BREAKER_THRESHOLD_FAILURES=5, BREAKER_RESET_TIMEOUT_MS=1000)
    assert settings.breaker_config() == CircuitBreakerConfig(threshold_failures=5, reset_timeout_ms=1000)


def test_poll_options_overrides(test_settings):
    options = test_settings.poll_options(max_attempts=30, check_before_first_wait=False)

    assert options.max_attempts == 30
    assert options.poll_interval_ms == 100
    assert options.check_before_first_wait is False
    assert options.retry.retry_delay_ms == 50


@pytest.mark.parametrize("environment", ["development", "production"])
def test_configure_logging(environment):
    configure_logging("DEBUG", environment)


def test_job_log_context_binds_fields():
    with job_log_context("job-9", provider="surya", attempt=2):
        bound = structlog.contextvars.get_contextvars()
        assert bound == {"job_id": "job-9", "attempt": 2, "provider": "surya"}

    assert "job_id" not in structlog.contextvars.get_contextvars()
