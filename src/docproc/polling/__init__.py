"""
Job polling.

Components:
- JobPoller: Drives a job id to a terminal state through the retry executor
- StatusClassifier: Case-insensitive provider status vocabularies
- Predefined classifiers for the supported providers
"""

from docproc.polling.classifier import (
    DEFAULT_CLASSIFIER,
    REDUCTO_CLASSIFIER,
    SURYA_CLASSIFIER,
    UNSILOED_CLASSIFIER,
    StatusClassifier,
)
from docproc.polling.poller import JobPoller, poll_until_complete

__all__ = [
    "JobPoller",
    "poll_until_complete",
    "StatusClassifier",
    "DEFAULT_CLASSIFIER",
    "SURYA_CLASSIFIER",
    "REDUCTO_CLASSIFIER",
    "UNSILOED_CLASSIFIER",
]
