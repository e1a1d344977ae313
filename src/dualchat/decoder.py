"""Stream decoders turning raw backend output into protocol events.

Two shapes of input are supported:

* line-oriented streams (server-sent events from chat-completion APIs), where
  every line is blank, a terminal sentinel, or ``<prefix><json>``;
* native streams from a local engine, which already yield typed response
  objects and only need a 1:1 mapping.

Both decoders are resilient: a single bad line or unknown variant is logged
and skipped, a failing source becomes one ``StreamError``, and every
sequence ends with exactly one ``Done`` or ``StreamError``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator
import json
import logging
from typing import Any

from .events import (
    Done,
    ProtocolEvent,
    StreamError,
    TextDelta,
    ThinkingDelta,
    ToolCallFragment,
)
from .exceptions import DecodeError, SessionBusyError, TransportError
from .responses import FunctionCallResponse, TextResponse, ThinkingResponse

LOGGER = logging.getLogger(__name__)

# Reasoning-capable chat-completion providers use either key.
_REASONING_KEYS = ("reasoning", "reasoning_content")


async def _aclose(stream: Any) -> None:
    close = getattr(stream, "aclose", None)
    if close is not None:
        await close()


class LineStreamDecoder:
    """Decode ``data: {...}`` lines from a chat-completion event stream."""

    def __init__(self, prefix: str = "data:", sentinel: str = "[DONE]") -> None:
        self.prefix = prefix
        self.sentinel = sentinel

    async def decode(
        self, lines: AsyncIterator[str]
    ) -> AsyncGenerator[ProtocolEvent, None]:
        """Yield protocol events for ``lines`` until the sentinel or EOF."""
        try:
            async for raw_line in lines:
                line = raw_line.strip()
                if not line or not line.startswith(self.prefix):
                    continue
                try:
                    events = self.decode_line(line)
                except DecodeError as exc:
                    LOGGER.warning(
                        "decoder.line.malformed",
                        extra={
                            "event": "decoder.line.malformed",
                            "error": str(exc),
                            "line": line[:200],
                        },
                    )
                    continue
                for event in events:
                    yield event
                    if isinstance(event, (Done, StreamError)):
                        return
        except (TransportError, SessionBusyError):
            raise
        except Exception as exc:  # noqa: BLE001 - any read failure ends the turn.
            LOGGER.warning(
                "decoder.stream.failed",
                extra={"event": "decoder.stream.failed", "error": str(exc)},
            )
            yield StreamError(str(exc) or exc.__class__.__name__)
            return
        finally:
            await _aclose(lines)
        yield Done()

    def decode_line(self, line: str) -> list[ProtocolEvent]:
        """Decode one prefixed line; raise ``DecodeError`` when it is unusable.

        Either every event of the line is returned or, on error, none is.
        """
        payload = line[len(self.prefix) :].strip()
        if payload == self.sentinel:
            return [Done()]

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"Invalid JSON payload: {exc}") from exc
        if not isinstance(data, dict):
            raise DecodeError("Expected a JSON object payload.")

        error = data.get("error")
        if error:
            if isinstance(error, dict):
                message = str(error.get("message") or error)
            else:
                message = str(error)
            return [StreamError(message)]

        choices = data.get("choices")
        if not isinstance(choices, list):
            raise DecodeError("Payload has no choices list.")
        if not choices:
            return []
        choice = choices[0]
        if not isinstance(choice, dict):
            raise DecodeError("Choice entry is not an object.")
        delta = choice.get("delta")
        if delta is None:
            return []
        if not isinstance(delta, dict):
            raise DecodeError("Choice delta is not an object.")

        events: list[ProtocolEvent] = []
        for key in _REASONING_KEYS:
            reasoning = delta.get(key)
            if isinstance(reasoning, str) and reasoning:
                events.append(ThinkingDelta(reasoning))
                break

        content = delta.get("content")
        if content is not None and not isinstance(content, str):
            raise DecodeError("Delta content is not a string.")
        if content:
            events.append(TextDelta(content))

        tool_calls = delta.get("tool_calls")
        if tool_calls is not None:
            if not isinstance(tool_calls, list):
                raise DecodeError("Delta tool_calls is not a list.")
            for position, item in enumerate(tool_calls):
                events.append(self._tool_fragment(item, position))
        return events

    @staticmethod
    def _tool_fragment(item: Any, position: int) -> ToolCallFragment:
        if not isinstance(item, dict):
            raise DecodeError("Tool call entry is not an object.")
        index = item.get("index", position)
        if isinstance(index, bool) or not isinstance(index, int):
            raise DecodeError(f"Tool call index {index!r} is not an integer.")
        call_id = item.get("id")
        function = item.get("function") or {}
        if not isinstance(function, dict):
            raise DecodeError("Tool call function is not an object.")
        name = function.get("name") or ""
        arguments = function.get("arguments") or ""
        # Some providers send complete argument objects instead of JSON text.
        if isinstance(arguments, dict):
            arguments = json.dumps(arguments)
        if not isinstance(name, str) or not isinstance(arguments, str):
            raise DecodeError("Tool call name/arguments must be strings.")
        return ToolCallFragment(
            index=index,
            call_id=str(call_id) if call_id else None,
            name=name,
            arguments=arguments,
        )


class NativeStreamDecoder:
    """Map native engine responses onto protocol events."""

    async def decode(
        self, responses: AsyncIterator[Any]
    ) -> AsyncGenerator[ProtocolEvent, None]:
        index = 0
        try:
            async for response in responses:
                match response:
                    case TextResponse(token=token):
                        if token:
                            yield TextDelta(token)
                    case ThinkingResponse(content=content):
                        if content:
                            yield ThinkingDelta(content)
                    case FunctionCallResponse(name=name, args=args):
                        yield ToolCallFragment(
                            index=index,
                            name=name,
                            arguments=json.dumps(args, default=str),
                        )
                        index += 1
                    case _:
                        LOGGER.warning(
                            "decoder.native.unknown",
                            extra={
                                "event": "decoder.native.unknown",
                                "response_type": type(response).__name__,
                            },
                        )
        except (TransportError, SessionBusyError):
            raise
        except Exception as exc:  # noqa: BLE001 - engine failures end the turn.
            LOGGER.warning(
                "decoder.stream.failed",
                extra={"event": "decoder.stream.failed", "error": str(exc)},
            )
            yield StreamError(str(exc) or exc.__class__.__name__)
            return
        finally:
            await _aclose(responses)
        yield Done()
