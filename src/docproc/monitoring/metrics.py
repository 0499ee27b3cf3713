"""Custom Prometheus metrics for the job execution layer.

These metrics are registered in the default prometheus_client registry and
can be exposed by any host application (e.g. ``start_http_server``).
Alert rules should be configured for:
- circuit_state_transitions_total{state="open"} (endpoint unhealthy)
- poll_outcomes_total{outcome="timed_out"} (jobs outliving the poll budget)
- retry_attempts_total{outcome="exhausted"} (persistent status-check failures)
"""

from prometheus_client import Counter, Histogram

# === Retry Metrics ===

retry_attempts_total = Counter(
    "docproc_retry_attempts_total",
    "Attempts made by the retry executor by operation and outcome",
    ["operation", "outcome"],
)
"""
Retry executor attempts.

Labels:
- operation: logical operation name (e.g. unsiloed:status)
- outcome: success, retry (failed, will retry), exhausted (failed, giving up)
"""

# === Circuit Breaker Metrics ===

circuit_state_transitions_total = Counter(
    "docproc_circuit_state_transitions_total",
    "Circuit breaker state transitions by breaker name and new state",
    ["breaker", "state"],
)
"""
Circuit breaker transitions.

Labels:
- breaker: registry name (e.g. unsiloed:polling)
- state: closed, open, half_open

Alert thresholds:
- WARN: any transition to open
- CRITICAL: more than 3 transitions to open in 10 minutes
"""

circuit_rejections_total = Counter(
    "docproc_circuit_rejections_total",
    "Calls rejected because the circuit was open",
    ["breaker"],
)

# === Polling Metrics ===

poll_checks_total = Counter(
    "docproc_poll_checks_total",
    "Status checks performed by the job poller",
    ["target"],
)

poll_outcomes_total = Counter(
    "docproc_poll_outcomes_total",
    "Terminal poll outcomes by target",
    ["target", "outcome"],
)
"""
Poll outcomes.

Labels:
- target: polling target (provider name, e.g. reducto)
- outcome: succeeded, failed, timed_out, error (retry exhausted / circuit open)
"""

job_poll_duration_seconds = Histogram(
    "docproc_job_poll_duration_seconds",
    "Wall-clock time from first check to terminal outcome",
    ["target", "outcome"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0],
)
"""
Poll duration histogram.

Buckets cover typical document jobs (seconds to ten minutes).

Alert thresholds:
- WARN: p95 > 120s
- CRITICAL: p95 > 300s
"""
