"""Tests for logger.py: setup_logging() and JsonFormatter.

Covers:
- stderr handler for command-line output
- Optional log file handler
- Debug level override
- LOG_LEVEL environment variable and configured level
- JSON formatter output

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

from catalog_reconcile.logger import JsonFormatter, setup_logging


def _close_file_handlers(handlers):
    for h in handlers:
        if isinstance(h, logging.FileHandler):
            h.close()


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("catalog_reconcile.logger.logging.basicConfig")
    def test_logs_to_stderr(self, mock_basic):
        """A StreamHandler on stderr is always installed."""
        setup_logging()

        mock_basic.assert_called_once()
        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr

    @patch("catalog_reconcile.logger.logging.basicConfig")
    def test_log_file_adds_file_handler(self, mock_basic, tmp_path):
        """log_file adds a FileHandler next to the stderr handler."""
        log_file = tmp_path / "reconcile.log"
        setup_logging(log_file=str(log_file))

        handlers = mock_basic.call_args[1]["handlers"]
        file_handlers = [h for h in handlers if isinstance(h, logging.FileHandler)]
        assert len(handlers) == 2
        assert len(file_handlers) == 1
        assert file_handlers[0].baseFilename == str(log_file)
        _close_file_handlers(handlers)

    @patch("catalog_reconcile.logger.logging.basicConfig")
    def test_debug_overrides_level(self, mock_basic):
        """debug=True passes DEBUG level to basicConfig."""
        setup_logging(debug=True)

        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("catalog_reconcile.logger.logging.basicConfig")
    def test_env_log_level_honored(self, mock_basic, monkeypatch):
        """LOG_LEVEL env var is reflected in basicConfig level."""
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging()

        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("catalog_reconcile.logger.logging.basicConfig")
    def test_env_beats_configured_level(self, mock_basic, monkeypatch):
        """LOG_LEVEL wins over the level from the config file."""
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(level="DEBUG")

        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("catalog_reconcile.logger.logging.basicConfig")
    def test_configured_level_used(self, mock_basic, monkeypatch):
        """The configured level applies when LOG_LEVEL is unset."""
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging(level="warning")

        assert mock_basic.call_args[1]["level"] == logging.WARNING

    @patch("catalog_reconcile.logger.logging.basicConfig")
    def test_debug_beats_env(self, mock_basic, monkeypatch):
        """debug=True overrides LOG_LEVEL env var."""
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(debug=True)

        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("catalog_reconcile.logger.logging.basicConfig")
    def test_unknown_level_falls_back_to_info(self, mock_basic, monkeypatch):
        """An unrecognised level name falls back to INFO."""
        monkeypatch.setenv("LOG_LEVEL", "CHATTY")
        setup_logging()

        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("catalog_reconcile.logger.logging.basicConfig")
    def test_default_level_is_info(self, mock_basic, monkeypatch):
        """Default level is INFO."""
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()

        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("catalog_reconcile.logger.logging.basicConfig")
    def test_json_format_uses_json_formatter(self, mock_basic, tmp_path):
        """debug_format='json' sets JsonFormatter on every handler."""
        setup_logging(debug_format="json", log_file=str(tmp_path / "r.log"))

        handlers = mock_basic.call_args[1]["handlers"]
        assert all(isinstance(h.formatter, JsonFormatter) for h in handlers)
        _close_file_handlers(handlers)

    @patch("catalog_reconcile.logger.logging.basicConfig")
    def test_file_format_includes_logger_name(self, mock_basic, tmp_path):
        """Text file output names the logger; stderr output does not."""
        setup_logging(log_file=str(tmp_path / "r.log"))

        stderr_handler, file_handler = mock_basic.call_args[1]["handlers"]
        assert "%(name)s" in file_handler.formatter._fmt
        assert "%(name)s" not in stderr_handler.formatter._fmt
        _close_file_handlers([file_handler])


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_output(self):
        """Formatted output is valid JSON with required keys."""
        formatter = JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        record = logging.LogRecord(
            name="catalog_reconcile.reconcile.engine",
            level=logging.INFO,
            pathname="engine.py",
            lineno=1,
            msg="Reconciled %d %s record(s)",
            args=(3, "model"),
            exc_info=None,
        )

        data = json.loads(formatter.format(record))

        assert "ts" in data
        assert data["level"] == "INFO"
        assert data["logger"] == "catalog_reconcile.reconcile.engine"
        assert data["msg"] == "Reconciled 3 model record(s)"

    def test_includes_exception(self):
        """Exception info is included in 'exc' key."""
        formatter = JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")

        try:
            raise ValueError("test error")
        except ValueError:
            exc_info = sys.exc_info()

        record = logging.LogRecord(
            name="test",
            level=logging.ERROR,
            pathname="test.py",
            lineno=1,
            msg="An error occurred",
            args=(),
            exc_info=exc_info,
        )

        data = json.loads(formatter.format(record))

        assert "ValueError" in data["exc"]
        assert "test error" in data["exc"]

    def test_single_line_output(self):
        """Output is a single line (no embedded newlines in JSON)."""
        formatter = JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        record = logging.LogRecord(
            name="test",
            level=logging.INFO,
            pathname="test.py",
            lineno=1,
            msg="line one\nline two",
            args=(),
            exc_info=None,
        )

        output = formatter.format(record)

        assert "\n" not in output
        assert json.loads(output)["msg"] == "line one\nline two"
