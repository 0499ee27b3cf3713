"""
Data models for docproc.

Organized by domain:
- enums: CircuitState, JobState
- policy_models: RetryConfig, CircuitBreakerConfig, PollOptions
- job_models: JobStatus and terminal outcomes
- document_models: DocumentIR, IRPage, IRLine, BBox, DocumentSource, StructuredResult
"""

from docproc.models.document_models import (
    BBox,
    DocumentIR,
    DocumentSource,
    IRLine,
    IRPage,
    StructuredResult,
)
from docproc.models.enums import CircuitState, JobState
from docproc.models.job_models import (
    JobFailed,
    JobStatus,
    JobSucceeded,
    TerminalOutcome,
)
from docproc.models.policy_models import (
    CircuitBreakerConfig,
    PollOptions,
    RetryConfig,
)

__all__ = [
    # Enums
    "CircuitState",
    "JobState",
    # Policies
    "RetryConfig",
    "CircuitBreakerConfig",
    "PollOptions",
    # Jobs
    "JobStatus",
    "JobSucceeded",
    "JobFailed",
    "TerminalOutcome",
    # Documents
    "BBox",
    "IRLine",
    "IRPage",
    "DocumentIR",
    "DocumentSource",
    "StructuredResult",
]
