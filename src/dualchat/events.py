"""Typed protocol events produced by the stream decoders."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TextDelta:
    token: str


@dataclass(frozen=True)
class ThinkingDelta:
    content: str


@dataclass(frozen=True)
class ToolCallFragment:
    """A piece of a tool call; pieces sharing ``index`` belong together."""

    index: int
    call_id: str | None = None
    name: str = ""
    arguments: str = ""


@dataclass(frozen=True)
class Done:
    pass


@dataclass(frozen=True)
class StreamError:
    message: str


ProtocolEvent = TextDelta | ThinkingDelta | ToolCallFragment | Done | StreamError
