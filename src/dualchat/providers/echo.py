"""Echo provider: repeats the prompt back, useful without any model."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from ..decoder import NativeStreamDecoder
from ..responses import TextResponse
from .base import BaseProvider, ProviderRequestContext


class EchoProvider(BaseProvider):
    name = "echo"

    def __init__(self) -> None:
        super().__init__()
        self.decoder = NativeStreamDecoder()

    async def open_stream(
        self, context: ProviderRequestContext
    ) -> AsyncGenerator[TextResponse, None]:
        yield TextResponse("echo: ")
        words = context.prompt.split(" ")
        for position, word in enumerate(words):
            yield TextResponse(word if position == len(words) - 1 else f"{word} ")
        if context.attachments:
            names = ", ".join(str(item) for item in context.attachments)
            yield TextResponse(f"\n\nattachments: {names}")
