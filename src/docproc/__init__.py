"""
Document-processing client for external OCR/VLM providers.

Submits documents to Surya (Datalab), Reducto and Unsiloed, drives their
long-running jobs to completion and normalizes the terminal payloads into a
common DocumentIR.

Architecture: retry executor + circuit breaker registry + generic job poller,
with thin httpx provider adapters on top.
"""

__version__ = "0.1.0"
