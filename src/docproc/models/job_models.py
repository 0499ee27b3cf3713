"""
Job status and terminal outcome models.

JobStatus is produced by every status check and lives only for the duration
of one poll loop. TerminalOutcome is the result of classifying its status
string against a provider vocabulary.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(BaseModel):
    """Snapshot of an external job returned by a status check."""
    model_config = ConfigDict(frozen=True)

    job_id: str = Field(..., description="Opaque provider job identifier")
    status: str = Field(default="", description="Free-form provider status (case-insensitive)")
    message: Optional[str] = Field(default=None, description="Provider message or error text")
    raw: Dict[str, Any] = Field(default_factory=dict, description="Full provider payload")

    @classmethod
    def from_payload(
        cls,
        job_id: str,
        payload: Mapping[str, Any],
        status_key: str = "status",
        message_keys: Sequence[str] = ("message", "error"),
    ) -> "JobStatus":
        """
        Build a JobStatus from a provider JSON payload.

        The first non-empty value among ``message_keys`` becomes the message.
        A missing or null status becomes an empty string, which no vocabulary
        matches, so the poller keeps polling.
        """
        message = None
        for key in message_keys:
            value = payload.get(key)
            if value:
                message = str(value)
                break

        status = payload.get(status_key)
        return cls(
            job_id=job_id,
            status="" if status is None else str(status),
            message=message,
            raw=dict(payload),
        )


@dataclass(frozen=True)
class JobSucceeded:
    """Terminal success carrying the raw provider payload."""

    payload: Dict[str, Any]


@dataclass(frozen=True)
class JobFailed:
    """Terminal failure carrying the provider-reported reason."""

    reason: str


TerminalOutcome = Union[JobSucceeded, JobFailed]
