"""
Status classification against provider vocabularies.

Each provider names the same three outcomes differently ("complete" vs
"completed" vs "succeeded"), so the poller takes a classifier instead of a
hardcoded enum. Matching is case-insensitive and ignores surrounding
whitespace; any status outside both vocabularies means "keep polling".
"""

from typing import Iterable, Optional

from docproc.models.job_models import JobFailed, JobStatus, JobSucceeded, TerminalOutcome


class StatusClassifier:
    """
    Maps a JobStatus onto a TerminalOutcome, or None for non-terminal states.

    Attributes:
        success: Lower-cased success vocabulary
        failure: Lower-cased failure vocabulary
    """

    def __init__(self, success: Iterable[str], failure: Iterable[str]):
        self.success = frozenset(s.strip().lower() for s in success)
        self.failure = frozenset(s.strip().lower() for s in failure)
        overlap = self.success & self.failure
        if overlap:
            raise ValueError(f"Statuses cannot be both success and failure: {sorted(overlap)}")

    @staticmethod
    def normalize(status: Optional[str]) -> str:
        return (status or "").strip().lower()

    def is_success(self, status: Optional[str]) -> bool:
        return self.normalize(status) in self.success

    def is_failure(self, status: Optional[str]) -> bool:
        return self.normalize(status) in self.failure

    def classify(self, status: JobStatus) -> Optional[TerminalOutcome]:
        """
        Classify one status check.

        Returns:
            JobSucceeded with the raw payload, JobFailed with the provider
            message, or None when the job is still running
        """
        normalized = self.normalize(status.status)
        if normalized in self.success:
            return JobSucceeded(payload=status.raw)
        if normalized in self.failure:
            return JobFailed(reason=status.message or "Unknown error")
        return None

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"success={sorted(self.success)}, "
            f"failure={sorted(self.failure)})"
        )


DEFAULT_CLASSIFIER = StatusClassifier(
    success=("succeeded", "completed", "complete"),
    failure=("failed", "error"),
)

# Datalab check URLs report "complete"
SURYA_CLASSIFIER = StatusClassifier(
    success=("complete", "completed"),
    failure=("failed", "error"),
)

REDUCTO_CLASSIFIER = StatusClassifier(
    success=("completed",),
    failure=("failed",),
)

# Unsiloed mixes casing ("Starting", "Processing", "Succeeded")
UNSILOED_CLASSIFIER = StatusClassifier(
    success=("succeeded", "completed", "complete"),
    failure=("failed",),
)
