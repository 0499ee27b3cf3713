"""
Backoff policy: the delay before retry attempt *n*.

Pure and deterministic with the default RetryConfig. Growth is uncapped
unless ``max_delay_ms`` is set; callers combining a large ``max_retries``
with exponential backoff accept the resulting waits.
"""

import random

from docproc.models.policy_models import RetryConfig


def compute_delay_ms(
    attempt_index: int,
    config: RetryConfig,
    rng: random.Random | None = None,
) -> float:
    """
    Compute the delay before retrying after attempt ``attempt_index``.

    Args:
        attempt_index: 0-indexed number of the attempt that just failed
        config: Retry configuration
        rng: Random source for jitter (only used when ``config.jitter_ms > 0``)

    Returns:
        Delay in milliseconds

    Raises:
        ValueError: If attempt_index is negative
    """
    if attempt_index < 0:
        raise ValueError(f"attempt_index must be >= 0, got {attempt_index}")

    if config.use_exponential_backoff:
        delay: float = config.retry_delay_ms * (2 ** attempt_index)
    else:
        delay = config.retry_delay_ms

    if config.jitter_ms:
        delay += (rng or random).uniform(0, config.jitter_ms)

    if config.max_delay_ms is not None:
        delay = min(delay, config.max_delay_ms)

    return delay
