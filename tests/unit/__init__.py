"""
Unit tests for docproc.

Test individual components in isolation:
- Policy, job and document models (defaults, validation, constraints)
- Backoff policy (constant, exponential, capped, jittered)
- Circuit breaker and registry (state transitions, idempotent lookup)
- Retry executor (attempt bounds, waits, breaker gating)
- Job poller (terminal outcomes, timing, cancellation)
- Provider HTTP plumbing (error mapping, document loading)
"""
