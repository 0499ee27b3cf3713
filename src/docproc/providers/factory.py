"""
Provider client construction from application settings.

All clients built against the same registry share circuit breakers, so a
failing provider endpoint trips one breaker for every caller.
"""

from typing import Optional

from docproc.config import Settings, settings as default_settings
from docproc.providers.base_client import BaseProviderClient
from docproc.providers.marker import MarkerClient
from docproc.providers.reducto import ReductoClient
from docproc.providers.surya import SuryaClient
from docproc.providers.unsiloed import UnsiloedClient
from docproc.resilience.circuit_breaker import CircuitBreakerRegistry

PROVIDERS: dict[str, type[BaseProviderClient]] = {
    "surya": SuryaClient,
    "marker": MarkerClient,
    "reducto": ReductoClient,
    "unsiloed": UnsiloedClient,
}


def build_provider(
    name: str,
    settings: Optional[Settings] = None,
    registry: Optional[CircuitBreakerRegistry] = None,
    **options,
) -> BaseProviderClient:
    """
    Create a provider client configured from settings.

    Polling uses the global poll/retry/breaker settings with the provider's
    own attempt budget and first-check behaviour.

    Args:
        name: Provider name ("surya", "marker", "reducto" or "unsiloed", case-insensitive)
        settings: Application settings (default: global settings)
        registry: Shared breaker registry (default: a new registry)
        **options: Provider-specific client options (e.g. ``chunk_mode``)

    Returns:
        Provider client instance

    Raises:
        ValueError: Unknown provider name
    """
    key = name.strip().lower()
    client_cls = PROVIDERS.get(key)
    if client_cls is None:
        raise ValueError(
            f"Unknown provider: {name!r} (expected one of {', '.join(sorted(PROVIDERS))})"
        )

    settings = settings or default_settings
    prefix = key.upper()
    poll_options = settings.poll_options(
        max_attempts=getattr(settings, f"{prefix}_MAX_ATTEMPTS"),
        check_before_first_wait=client_cls.CHECK_BEFORE_FIRST_WAIT,
    )

    return client_cls(
        endpoint=getattr(settings, f"{prefix}_ENDPOINT"),
        api_key=getattr(settings, f"{prefix}_API_KEY"),
        timeout=settings.REQUEST_TIMEOUT,
        poll_options=poll_options,
        registry=registry if registry is not None else CircuitBreakerRegistry(),
        max_file_size=settings.MAX_FILE_SIZE_BYTES,
        **options,
    )
