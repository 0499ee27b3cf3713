"""
Policy value objects for retries, circuit breaking and polling.

All models are frozen: one instance may be shared across any number of
concurrent calls. Durations are integer milliseconds, matching the option
names used by provider configuration.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RetryConfig(BaseModel):
    """
    Retry behaviour for a single fallible operation.

    Total attempts are ``max_retries + 1``. With the defaults the delay before
    retry *n* (0-indexed) is ``retry_delay_ms * 2**n``, uncapped and without
    jitter.
    """
    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=0, ge=0, description="Retries after the first attempt")
    retry_delay_ms: int = Field(default=1000, gt=0, description="Base delay between retries (ms)")
    use_exponential_backoff: bool = Field(default=True, description="Double the delay on every retry")
    max_delay_ms: Optional[int] = Field(
        default=None,
        gt=0,
        description="Upper bound for a single delay (ms). None leaves growth uncapped",
    )
    jitter_ms: int = Field(
        default=0,
        ge=0,
        description="Random jitter added to each delay (ms). 0 keeps delays deterministic",
    )


class CircuitBreakerConfig(BaseModel):
    """Trip point and cool-down of a circuit breaker."""
    model_config = ConfigDict(frozen=True)

    threshold_failures: int = Field(default=3, gt=0, description="Consecutive failures before opening")
    reset_timeout_ms: int = Field(default=30000, gt=0, description="Cool-down before half-open (ms)")


class PollOptions(BaseModel):
    """
    Options for driving one external job to a terminal state.

    The nominal poll budget is ``max_attempts * poll_interval_ms``; retries
    inside each status check add to it.
    """
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=150, gt=0, description="Status check cap")
    poll_interval_ms: int = Field(default=2000, gt=0, description="Wait between checks (ms)")
    retry: RetryConfig = Field(default_factory=RetryConfig, description="Retry policy per status check")
    breaker: Optional[CircuitBreakerConfig] = Field(
        default=None,
        description="Circuit breaker for the polling target. None disables the breaker",
    )
    check_before_first_wait: bool = Field(
        default=True,
        description="Check immediately, then wait between checks. False waits before every check",
    )

    @property
    def budget_ms(self) -> int:
        """Nominal wall-clock budget, exclusive of per-check retry delays."""
        return self.max_attempts * self.poll_interval_ms
