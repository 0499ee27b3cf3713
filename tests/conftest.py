"""Shared test fixtures and configuration for all tests.

This conftest.py provides a controllable clock and sleep so that no test
waits for real: every poller/executor under test gets ``fake_sleep``, which
records the requested delay and advances ``fake_clock`` by it.
"""

import pytest

from docproc.config import Settings
from docproc.polling.poller import JobPoller
from docproc.resilience.circuit_breaker import CircuitBreakerRegistry
from docproc.resilience.executor import RetryExecutor


class FakeClock:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def advance_ms(self, milliseconds: float) -> None:
        self.now += milliseconds / 1000.0


class SleepRecorder:
    """Awaitable stand-in for asyncio.sleep that records delays in seconds."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.advance(seconds)

    @property
    def calls_ms(self) -> list[int]:
        return [round(s * 1000) for s in self.calls]


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults for local testing.

    Constructed explicitly so a developer's .env never leaks into tests.
    """
    return Settings(
        _env_file=None,
        APP_NAME="docproc (Test)",
        LOG_LEVEL="DEBUG",
        ENVIRONMENT="development",
        REQUEST_TIMEOUT=5,
        POLL_INTERVAL_MS=100,
        POLL_MAX_RETRIES=0,
        RETRY_DELAY_MS=50,
        SURYA_API_KEY="surya-test-key",
        MARKER_API_KEY="marker-test-key",
        REDUCTO_API_KEY="reducto-test-key",
        UNSILOED_API_KEY="unsiloed-test-key",
        PROMETHEUS_ENABLED=False,  # init_runtime must not open a port in tests
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(fake_clock: FakeClock) -> SleepRecorder:
    return SleepRecorder(fake_clock)


@pytest.fixture
def registry(fake_clock: FakeClock) -> CircuitBreakerRegistry:
    """Fresh breaker registry on the fake clock."""
    return CircuitBreakerRegistry(clock=fake_clock)


@pytest.fixture
def executor(fake_sleep: SleepRecorder) -> RetryExecutor:
    return RetryExecutor(sleep=fake_sleep)


@pytest.fixture
def poller(
    executor: RetryExecutor,
    registry: CircuitBreakerRegistry,
    fake_sleep: SleepRecorder,
    fake_clock: FakeClock,
) -> JobPoller:
    """JobPoller wired to the fake clock/sleep and the test registry."""
    return JobPoller(executor=executor, registry=registry, sleep=fake_sleep, clock=fake_clock)
