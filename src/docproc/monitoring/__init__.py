"""Monitoring and metrics instrumentation for docproc.

Exports Prometheus metrics for retries, circuit breakers and job polling.
"""

from docproc.monitoring.metrics import (
    circuit_rejections_total,
    circuit_state_transitions_total,
    job_poll_duration_seconds,
    poll_checks_total,
    poll_outcomes_total,
    retry_attempts_total,
)

__all__ = [
    "retry_attempts_total",
    "circuit_state_transitions_total",
    "circuit_rejections_total",
    "poll_checks_total",
    "poll_outcomes_total",
    "job_poll_duration_seconds",
]
