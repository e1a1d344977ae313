"""Native response variants yielded by local inference engines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TextResponse:
    token: str


@dataclass(frozen=True)
class FunctionCallResponse:
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ThinkingResponse:
    content: str


ModelResponse = TextResponse | FunctionCallResponse | ThinkingResponse
