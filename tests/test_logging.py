"""Tests for structured logging behavior."""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
import unittest

from dualchat.config import LoggingConfig
from dualchat.logging_utils import configure_logging


def _record(name: str, msg: str = "ok", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name=name,
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class ConfigureLoggingTests(unittest.TestCase):
    """Validate configure_logging() handler setup behavior."""

    def setUp(self) -> None:
        # Preserve root logger state so tests do not pollute each other.
        root = logging.getLogger()
        self._original_level = root.level
        self._original_handlers = list(root.handlers)

    def tearDown(self) -> None:
        root = logging.getLogger()
        for handler in root.handlers:
            if handler not in self._original_handlers:
                handler.close()
        root.setLevel(self._original_level)
        root.handlers.clear()
        root.handlers.extend(self._original_handlers)

    def _stream_handlers(self) -> list[logging.Handler]:
        return [
            h
            for h in logging.getLogger().handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        ]

    def test_accepts_model_or_dict(self) -> None:
        configure_logging(LoggingConfig(level="debug", structured=False))
        self.assertEqual(logging.getLogger().level, logging.DEBUG)
        configure_logging({"level": "ERROR", "structured": False})
        self.assertEqual(logging.getLogger().level, logging.ERROR)

    def test_structured_output_is_json_with_extra_fields(self) -> None:
        configure_logging({"level": "INFO", "structured": True})
        handler = self._stream_handlers()[0]
        line = handler.formatter.format(
            _record(
                "dualchat.session",
                "session.turn.start",
                event="session.turn.start",
                provider="echo",
            )
        )
        data = json.loads(line)
        self.assertEqual(data["event"], "session.turn.start")
        self.assertEqual(data["provider"], "echo")
        self.assertEqual(data["logger"], "dualchat.session")
        self.assertEqual(data["level"], "warning")

    def test_plain_formatter_when_not_structured(self) -> None:
        configure_logging({"level": "INFO", "structured": False})
        handler = self._stream_handlers()[0]
        line = handler.formatter.format(_record("dualchat.decoder", "decoder.line.malformed"))
        self.assertIn("WARNING dualchat.decoder decoder.line.malformed", line)

    def test_stderr_handler_only_passes_app_records(self) -> None:
        configure_logging({"level": "DEBUG", "structured": False})
        handler = self._stream_handlers()[0]
        self.assertEqual(handler.level, logging.WARNING)
        self.assertTrue(handler.filter(_record("dualchat.providers.remote")))
        self.assertFalse(handler.filter(_record("httpx")))

    def test_noisy_loggers_set_to_warning(self) -> None:
        configure_logging({"level": "DEBUG", "structured": False})
        for name in ("httpx", "httpcore", "ollama"):
            self.assertEqual(logging.getLogger(name).level, logging.WARNING)

    def test_file_handler_created(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_path = Path(tmp) / "nested" / "app.log"
            configure_logging(
                {
                    "level": "DEBUG",
                    "structured": True,
                    "log_to_file": True,
                    "log_file_path": str(log_path),
                }
            )
            file_handlers = [
                h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)
            ]
            self.assertEqual(len(file_handlers), 1)
            self.assertEqual(file_handlers[0].level, logging.DEBUG)
            self.assertTrue(log_path.exists())
            file_handlers[0].close()


if __name__ == "__main__":
    unittest.main()
