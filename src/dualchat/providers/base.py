"""Provider contract shared by every backend adapter."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, ClassVar

from ..decoder import LineStreamDecoder, NativeStreamDecoder
from ..events import ProtocolEvent
from ..exceptions import ToolExecutionError
from ..history import Message
from ..tooling import ToolDescriptor, ToolRegistryProtocol, resolve


@dataclass(frozen=True)
class SamplingConfig:
    """Generation parameters; each adapter forwards the ones its backend knows."""

    temperature: float = 0.7
    top_k: int = 40
    token_buffer: int = 256
    seed: int | None = None
    max_tokens: int = 2048


@dataclass(frozen=True)
class ContextChunk:
    """One replayed piece of conversation context."""

    role: str
    text: str

    @property
    def is_user(self) -> bool:
        return self.role == "user"


@dataclass(frozen=True)
class ProviderRequestContext:
    """Everything a provider needs for one turn; rebuilt for every turn."""

    system_prompt: str
    history: tuple[Message, ...]
    prompt: str
    attachments: tuple[Any, ...] = ()
    sampling: SamplingConfig = field(default_factory=SamplingConfig)

    def chunks(self) -> list[ContextChunk]:
        """System prompt, prior turns in order, then the current prompt."""
        chunks: list[ContextChunk] = []
        if self.system_prompt:
            chunks.append(ContextChunk("system", self.system_prompt))
        chunks.extend(ContextChunk(message.role, message.text) for message in self.history)
        chunks.append(ContextChunk("user", self.prompt))
        return chunks


class BaseProvider(ABC):
    """Backend adapter contract consumed by ``ChatSession``.

    Subclasses set ``decoder`` and implement ``open_stream``, which yields the
    backend's raw events (lines or native responses) for ``decoder``.
    """

    name: ClassVar[str] = "base"
    decoder: LineStreamDecoder | NativeStreamDecoder

    def __init__(
        self,
        tool_registry: ToolRegistryProtocol | None = None,
        sampling: SamplingConfig | None = None,
    ) -> None:
        self.tool_registry = tool_registry
        self.sampling = sampling or SamplingConfig()

    @property
    def has_tools(self) -> bool:
        return self.tool_registry is not None

    async def list_available_tools(self) -> list[ToolDescriptor]:
        if self.tool_registry is None:
            return []
        return list(await resolve(self.tool_registry.list_tools()))

    async def execute_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        if self.tool_registry is None:
            raise ToolExecutionError("No tool registry is configured.")
        return await resolve(self.tool_registry.execute(name, arguments))

    @abstractmethod
    def open_stream(
        self, context: ProviderRequestContext
    ) -> AsyncIterator[Any]:  # pragma: no cover - interface only
        ...

    def stream_events(
        self, context: ProviderRequestContext
    ) -> AsyncIterator[ProtocolEvent]:
        """Open the raw stream for ``context`` and decode it lazily."""
        return self.decoder.decode(self.open_stream(context))

    def reset(self) -> None:
        """Drop backend-held session state; never blocks."""

    async def aclose(self) -> None:
        """Release long-lived resources such as HTTP clients."""
