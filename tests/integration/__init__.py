"""
Integration tests for docproc.

Test provider clients composed with the real poller, retry executor and
breaker registry against scripted HTTP APIs (httpx.MockTransport):
- Surya (submit, wait-first polling, page conversion)
- Reducto (upload, parse, async job polling, block grouping)
- Unsiloed (format validation, check-first polling, chunk conversion)
- Provider factory wiring from Settings
"""
