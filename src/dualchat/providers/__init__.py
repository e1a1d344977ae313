"""Backend adapters behind the common ``BaseProvider`` contract."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .base import BaseProvider, ContextChunk, ProviderRequestContext, SamplingConfig
from .echo import EchoProvider
from .local import InferenceEngine, InferenceSession, LocalInferenceAdapter
from .remote import RemoteApiAdapter

if TYPE_CHECKING:
    from .ollama_engine import OllamaInferenceEngine, OllamaInferenceSession

__all__ = [
    "BaseProvider",
    "ContextChunk",
    "EchoProvider",
    "InferenceEngine",
    "InferenceSession",
    "LocalInferenceAdapter",
    "OllamaInferenceEngine",
    "OllamaInferenceSession",
    "ProviderRequestContext",
    "RemoteApiAdapter",
    "SamplingConfig",
]


def __getattr__(name: str) -> Any:
    """Import the Ollama engine, and with it the ``ollama`` SDK, on first use."""
    if name in {"OllamaInferenceEngine", "OllamaInferenceSession"}:
        from . import ollama_engine

        return getattr(ollama_engine, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
