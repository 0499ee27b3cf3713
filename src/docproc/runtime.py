"""
Process startup for applications embedding docproc.

Call ``init_runtime()`` once, before building provider clients: it
configures structured logging from settings and, when enabled, serves the
Prometheus metrics on their own port.
"""

from typing import Callable, Optional

import structlog
from prometheus_client import start_http_server

from docproc.config import Settings
from docproc.config import settings as default_settings
from docproc.logging_config import configure_logging

logger = structlog.get_logger(__name__)


def init_runtime(
    settings: Optional[Settings] = None,
    start_server: Callable[..., object] = start_http_server,
) -> bool:
    """
    Configure logging and metrics exposition.

    Args:
        settings: Settings to apply (module-level settings by default)
        start_server: Metrics server starter, ``prometheus_client.start_http_server``

    Returns:
        True if the metrics endpoint was started
    """
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL, settings.ENVIRONMENT, app_name=settings.APP_NAME)

    if not settings.PROMETHEUS_ENABLED:
        logger.info("Prometheus exposition disabled")
        return False

    start_server(settings.PROMETHEUS_PORT, addr=settings.PROMETHEUS_ADDR)
    logger.info(
        "Prometheus metrics exposed",
        port=settings.PROMETHEUS_PORT,
        addr=settings.PROMETHEUS_ADDR,
    )
    return True
