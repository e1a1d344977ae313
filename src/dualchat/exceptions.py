"""Domain exception hierarchy for the dualchat session engine."""

from __future__ import annotations


class DualChatError(RuntimeError):
    """Base class for all domain-level chat errors."""


class TransportError(DualChatError):
    """Raised when a backend stream cannot be established."""


class DecodeError(DualChatError):
    """Raised when a single stream chunk cannot be decoded."""


class ToolExecutionError(DualChatError):
    """Raised when a tool is unknown or fails while executing."""


class ToolAssemblyError(DualChatError):
    """Raised when buffered tool-call fragments do not form a valid call."""


class SessionBusyError(DualChatError):
    """Raised when a turn is started while another one is still streaming."""


class HistoryError(DualChatError):
    """Raised when a history invariant would be violated."""


class ConfigValidationError(DualChatError):
    """Raised when configuration cannot be validated safely."""
