"""
Unit tests for init_runtime and the app context log processor.
"""

from unittest.mock import MagicMock

from docproc import __version__
from docproc.logging_config import app_context_processor
from docproc.runtime import init_runtime


def test_disabled_metrics_never_start_server(test_settings):
    start_server = MagicMock()

    assert init_runtime(test_settings, start_server=start_server) is False
    start_server.assert_not_called()


def test_enabled_metrics_start_server(test_settings):
    settings = test_settings.model_copy(
        update={"PROMETHEUS_ENABLED": True, "PROMETHEUS_PORT": 9200, "PROMETHEUS_ADDR": "127.0.0.1"}
    )
    start_server = MagicMock()

    assert init_runtime(settings, start_server=start_server) is True
    start_server.assert_called_once_with(9200, addr="127.0.0.1")


def test_app_name_reaches_log_events(test_settings, capsys):
    settings = test_settings.model_copy(update={"ENVIRONMENT": "production"})

    init_runtime(settings, start_server=MagicMock())

    assert '"app": "docproc (Test)"' in capsys.readouterr().out


def test_app_context_processor():
    event = app_context_processor("ocr-worker")(None, "info", {"event": "x"})
    assert event == {"event": "x", "app": "ocr-worker", "app_version": __version__}
