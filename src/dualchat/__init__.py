"""Top-level package for dualchat."""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .assembler import ToolCall, ToolCallAssembler
    from .config import Config, build_session, load_config
    from .exceptions import (
        ConfigValidationError,
        DecodeError,
        DualChatError,
        HistoryError,
        SessionBusyError,
        ToolAssemblyError,
        ToolExecutionError,
        TransportError,
    )
    from .history import ConversationHistory, Message, MessageOrigin
    from .providers import (
        BaseProvider,
        EchoProvider,
        LocalInferenceAdapter,
        OllamaInferenceEngine,
        RemoteApiAdapter,
        SamplingConfig,
    )
    from .session import ChatFragment, ChatSession
    from .tooling import (
        ToolDescriptor,
        ToolExecutionResult,
        ToolRegistry,
        execute_tool_calls,
    )

# Exported name -> defining submodule.
_EXPORTS: dict[str, str] = {
    "ToolCall": ".assembler",
    "ToolCallAssembler": ".assembler",
    "Config": ".config",
    "build_session": ".config",
    "load_config": ".config",
    "ConfigValidationError": ".exceptions",
    "DecodeError": ".exceptions",
    "DualChatError": ".exceptions",
    "HistoryError": ".exceptions",
    "SessionBusyError": ".exceptions",
    "ToolAssemblyError": ".exceptions",
    "ToolExecutionError": ".exceptions",
    "TransportError": ".exceptions",
    "ConversationHistory": ".history",
    "Message": ".history",
    "MessageOrigin": ".history",
    "BaseProvider": ".providers",
    "EchoProvider": ".providers",
    "LocalInferenceAdapter": ".providers",
    "OllamaInferenceEngine": ".providers.ollama_engine",
    "RemoteApiAdapter": ".providers",
    "SamplingConfig": ".providers",
    "ChatFragment": ".session",
    "ChatSession": ".session",
    "ToolDescriptor": ".tooling",
    "ToolExecutionResult": ".tooling",
    "ToolRegistry": ".tooling",
    "execute_tool_calls": ".tooling",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import symbols; the ollama SDK loads only with the Ollama engine."""
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    return getattr(import_module(module_name, __name__), name)
