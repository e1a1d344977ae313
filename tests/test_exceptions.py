"""Tests for domain exception hierarchy."""

from __future__ import annotations

import unittest

from dualchat.exceptions import (
    ConfigValidationError,
    DecodeError,
    DualChatError,
    HistoryError,
    SessionBusyError,
    ToolAssemblyError,
    ToolExecutionError,
    TransportError,
)


class ExceptionHierarchyTests(unittest.TestCase):
    """Validate exception inheritance contract."""

    def test_exception_hierarchy(self) -> None:
        for error_type in (
            ConfigValidationError,
            DecodeError,
            HistoryError,
            SessionBusyError,
            ToolAssemblyError,
            ToolExecutionError,
            TransportError,
        ):
            with self.subTest(error=error_type.__name__):
                self.assertTrue(issubclass(error_type, DualChatError))
        self.assertTrue(issubclass(DualChatError, RuntimeError))


if __name__ == "__main__":
    unittest.main()
