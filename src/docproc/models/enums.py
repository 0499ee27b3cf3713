"""
Enumerations for job execution state.

Both enums are closed: no values outside these sets are produced.
"""

from enum import Enum


class CircuitState(str, Enum):
    """
    Circuit breaker states.

    CLOSED is the initial state. OPEN rejects calls until the reset timeout
    elapses, HALF_OPEN admits a single trial call.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class JobState(str, Enum):
    """
    Lifecycle of an external job as seen by the poller.

    SUCCEEDED, FAILED and TIMED_OUT are terminal.
    """

    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT)
