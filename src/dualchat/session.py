"""Chat session orchestration over a pluggable provider."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Iterable
from contextlib import aclosing
from dataclasses import dataclass
import logging
from typing import Any, Literal

from .assembler import ToolCallAssembler
from .events import Done, StreamError, TextDelta, ThinkingDelta, ToolCallFragment
from .exceptions import SessionBusyError, TransportError
from .history import ConversationHistory, Message
from .providers.base import BaseProvider, ProviderRequestContext
from .tooling import ToolExecutionResult, execute_tool_call

LOGGER = logging.getLogger(__name__)

TOOL_RESULTS_HEADER = "\n\n---\n**Tool Execution Results:**\n"


@dataclass(frozen=True)
class ChatFragment:
    """A single typed piece of streamed output."""

    kind: Literal["text", "thinking", "tool", "error"]
    text: str

    def __str__(self) -> str:
        return self.text


class ChatSession:
    """Stateful chat wrapper that owns the history and streams replies.

    One turn at a time: starting a turn while another is still streaming
    raises ``SessionBusyError``. Iterators returned by ``generate`` and
    ``send_message`` should be closed when abandoned early (for example with
    ``contextlib.aclosing``) so the backend stream is released promptly.
    """

    def __init__(
        self,
        provider: BaseProvider,
        system_prompt: str = "",
        history: Iterable[Message] | None = None,
        result_preview_chars: int = 100,
    ) -> None:
        self.provider = provider
        self.system_prompt = system_prompt
        self.result_preview_chars = result_preview_chars
        self._history = ConversationHistory(history)
        self._busy = False
        # Bumped whenever the history is cleared or replaced, so a turn that
        # outlives such a reset does not write into the new history.
        self._epoch = 0
        self.last_tool_results: list[ToolExecutionResult] = []

    @property
    def history(self) -> tuple[Message, ...]:
        """Read-only snapshot of the conversation."""
        return self._history.snapshot()

    @history.setter
    def history(self, messages: Iterable[Message]) -> None:
        self._history.replace(messages)
        self._invalidate()

    @property
    def is_busy(self) -> bool:
        return self._busy

    def clear_history(self) -> None:
        """Forget the conversation and any backend state replayed from it."""
        self._history.clear()
        self._invalidate()

    def export_json(self) -> str:
        return self._history.export_json()

    def _invalidate(self) -> None:
        self._epoch += 1
        self.provider.reset()

    def _begin_turn(self) -> None:
        if self._busy:
            raise SessionBusyError(
                "A response is still streaming; finish or close it before starting another."
            )
        self._busy = True

    async def generate(
        self, prompt: str, attachments: Iterable[Any] = ()
    ) -> AsyncGenerator[ChatFragment, None]:
        """Stream a reply to ``prompt`` without touching the history."""
        self._begin_turn()
        try:
            replay = self._history.snapshot()
            turn = self._run_turn(prompt, tuple(attachments), replay)
            async with aclosing(turn) as fragments:
                async for fragment in fragments:
                    yield fragment
        finally:
            self._busy = False

    async def send_message(
        self, prompt: str, attachments: Iterable[Any] = ()
    ) -> AsyncGenerator[ChatFragment, None]:
        """Stream a reply to ``prompt`` and record both turns in the history.

        The user message is appended before the first fragment; the assistant
        message (all non-thinking fragments concatenated) is appended when the
        stream ends or is closed by the caller.
        """
        self._begin_turn()
        epoch = self._epoch
        collected: list[str] = []
        attachments = tuple(attachments)
        try:
            replay = self._history.snapshot()
            self._history.append_user(prompt, attachments)
            async with aclosing(self._run_turn(prompt, attachments, replay)) as fragments:
                async for fragment in fragments:
                    if fragment.kind != "thinking":
                        collected.append(fragment.text)
                    yield fragment
        except (GeneratorExit, asyncio.CancelledError):
            LOGGER.info(
                "session.turn.abandoned",
                extra={"event": "session.turn.abandoned", "chars": sum(map(len, collected))},
            )
            self._append_assistant(epoch, collected)
            raise
        except Exception:
            if epoch == self._epoch:
                self._history.rollback_last_user_append()
            raise
        else:
            self._append_assistant(epoch, collected)
        finally:
            self._busy = False

    def _append_assistant(self, epoch: int, collected: list[str]) -> None:
        if epoch != self._epoch:
            LOGGER.debug(
                "session.turn.stale",
                extra={"event": "session.turn.stale"},
            )
            return
        handle = self._history.append_assistant()
        handle.append("".join(collected))
        handle.freeze()

    async def _run_turn(
        self,
        prompt: str,
        attachments: tuple[Any, ...],
        replay: tuple[Message, ...],
    ) -> AsyncGenerator[ChatFragment, None]:
        context = ProviderRequestContext(
            system_prompt=self.system_prompt,
            history=replay,
            prompt=prompt,
            attachments=attachments,
            sampling=self.provider.sampling,
        )
        assembler = ToolCallAssembler()
        self.last_tool_results = []
        LOGGER.info(
            "session.turn.start",
            extra={
                "event": "session.turn.start",
                "provider": self.provider.name,
                "replayed_messages": len(replay),
            },
        )

        try:
            async with aclosing(self.provider.stream_events(context)) as events:
                async for event in events:
                    match event:
                        case TextDelta(token=token):
                            yield ChatFragment("text", token)
                        case ThinkingDelta(content=content):
                            yield ChatFragment("thinking", content)
                        case ToolCallFragment():
                            if self.provider.has_tools:
                                assembler.add(event)
                            else:
                                LOGGER.debug(
                                    "session.tool.ignored",
                                    extra={"event": "session.tool.ignored", "tool": event.name},
                                )
                        case StreamError(message=message):
                            LOGGER.warning(
                                "session.stream.error",
                                extra={"event": "session.stream.error", "error": message},
                            )
                            yield ChatFragment("error", f"\n\nError: {message}")
                            return
                        case Done():
                            break
        except TransportError as exc:
            LOGGER.warning(
                "session.transport.error",
                extra={"event": "session.transport.error", "error": str(exc)},
            )
            yield ChatFragment("error", f"Error: {exc}")
            return

        async for fragment in self._run_tools(assembler):
            yield fragment

        LOGGER.info(
            "session.turn.complete",
            extra={
                "event": "session.turn.complete",
                "tool_calls": len(self.last_tool_results),
            },
        )

    async def _run_tools(
        self, assembler: ToolCallAssembler
    ) -> AsyncGenerator[ChatFragment, None]:
        if not assembler.has_fragments:
            return
        calls = assembler.finalize()
        yield ChatFragment("tool", TOOL_RESULTS_HEADER)
        for error in assembler.errors:
            yield ChatFragment("tool", f"\n• Skipped malformed tool call: {error}")

        for call in calls:
            LOGGER.info(
                "session.tool.call",
                extra={"event": "session.tool.call", "tool": call.name},
            )
            yield ChatFragment("tool", f"\n• Executing: {call.name}...")
            result = await execute_tool_call(self.provider.execute_tool, call)
            self.last_tool_results.append(result)
            yield ChatFragment("tool", self.format_tool_result(result))

    def format_tool_result(self, result: ToolExecutionResult) -> str:
        if not result.success:
            return f" ✗ Failed: {result.error}"
        if result.result is None:
            return " ✓ Success"
        preview = str(result.result)
        if len(preview) > self.result_preview_chars:
            preview = preview[: self.result_preview_chars] + "..."
        return f" ✓ Success\n  Result: {preview}"

    async def aclose(self) -> None:
        """Release the provider's resources."""
        await self.provider.aclose()

    async def __aenter__(self) -> ChatSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
