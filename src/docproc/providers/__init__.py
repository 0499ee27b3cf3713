"""
Document-processing provider clients.

Components:
- BaseProviderClient: Abstract base with HTTP plumbing and job polling
- SuryaClient: Datalab Surya OCR
- MarkerClient: Datalab Marker (markdown conversion)
- ReductoClient: Reducto upload + parse
- UnsiloedClient: Unsiloed parsing, extraction, tables, classification, splitting
- build_provider: Client factory driven by Settings
- exceptions: Provider error taxonomy
"""

from docproc.providers.base_client import BaseProviderClient, parse_retry_after_ms
from docproc.providers.exceptions import (
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
    ProviderRequestError,
    ProviderResponseError,
    ProviderServerError,
    ProviderTimeoutError,
    UnsupportedFormatError,
)
from docproc.providers.factory import PROVIDERS, build_provider
from docproc.providers.files import LoadedDocument, detect_mime_type, mime_type_from_filename
from docproc.providers.marker import MarkerClient
from docproc.providers.reducto import ReductoClient
from docproc.providers.surya import SuryaClient
from docproc.providers.unsiloed import UnsiloedClient

__all__ = [
    "BaseProviderClient",
    "SuryaClient",
    "MarkerClient",
    "ReductoClient",
    "UnsiloedClient",
    "PROVIDERS",
    "build_provider",
    "parse_retry_after_ms",
    "LoadedDocument",
    "detect_mime_type",
    "mime_type_from_filename",
    "ProviderError",
    "ProviderConnectionError",
    "ProviderTimeoutError",
    "ProviderServerError",
    "ProviderRateLimitError",
    "ProviderRequestError",
    "ProviderResponseError",
    "UnsupportedFormatError",
]
