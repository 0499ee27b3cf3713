"""Unit test fixtures (mocks and stubs).

Provides scripted status checks and operations for testing the executor and
poller without any HTTP traffic.
"""

from typing import Any, Callable, Optional
from unittest.mock import AsyncMock

import pytest

from docproc.models.job_models import JobStatus
from docproc.resilience.exceptions import TransientCheckError


def job_status(status: str, message: Optional[str] = None, **raw: Any) -> JobStatus:
    """Build a JobStatus for job "job-1" whose raw payload includes the status."""
    payload = {"status": status, **raw}
    if message is not None:
        payload["message"] = message
    return JobStatus(job_id="job-1", status=status, message=message, raw=payload)


@pytest.fixture
def make_status_check() -> Callable[..., AsyncMock]:
    """Factory for a status check returning the given results in order.

    Items may be status strings, JobStatus instances, payload dicts or
    exceptions (raised instead of returned).
    """

    def _make(*results: Any) -> AsyncMock:
        side_effect = [job_status(r) if isinstance(r, str) else r for r in results]
        return AsyncMock(side_effect=side_effect)

    return _make


@pytest.fixture
def failing_operation() -> AsyncMock:
    """Operation that always raises a transient error."""
    return AsyncMock(side_effect=TransientCheckError("connection reset"))
