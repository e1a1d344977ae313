"""Local inference engine backed by an Ollama server."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence
from contextlib import aclosing
import inspect
import logging
from typing import Any

import httpx
from ollama import AsyncClient

from ..exceptions import TransportError
from ..responses import FunctionCallResponse, ModelResponse, TextResponse, ThinkingResponse
from ..tooling import ToolDescriptor
from .base import ContextChunk, SamplingConfig

LOGGER = logging.getLogger(__name__)


def _extract_from_chunk(chunk: Any, field: str) -> Any:
    """Extract a named field from message.field in an Ollama chunk payload.

    Tries SDK object attribute access first, then falls back to dict paths
    produced by model_dump().  Returns None when the field is absent.
    """
    message_obj = getattr(chunk, "message", None)
    if message_obj is not None and not isinstance(message_obj, dict):
        value = getattr(message_obj, field, None)
        if value is not None:
            return value

    if hasattr(chunk, "model_dump"):
        chunk = chunk.model_dump()

    if isinstance(chunk, dict):
        message = chunk.get("message")
        if isinstance(message, dict):
            return message.get(field)
    return None


def _parse_tool_call(tc: Any) -> tuple[str, dict[str, Any]]:
    """Extract (name, arguments) from a tool call object or dict."""
    fn = getattr(tc, "function", None)
    if fn is None and isinstance(tc, dict):
        fn = tc.get("function")
    if fn is None:
        return "", {}
    if isinstance(fn, dict):
        name, args = fn.get("name"), fn.get("arguments")
    else:
        name, args = getattr(fn, "name", None), getattr(fn, "arguments", None)
    if not isinstance(args, dict):
        args = {}
    return str(name or ""), dict(args)


def _map_exception(exc: Exception) -> TransportError:
    if isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout, httpx.NetworkError)):
        return TransportError(f"Unable to connect to Ollama: {exc}")
    return TransportError(f"Ollama rejected the request: {exc}")


def _responses_from_chunk(chunk: Any) -> list[ModelResponse]:
    responses: list[ModelResponse] = []
    thinking = _extract_from_chunk(chunk, "thinking")
    if isinstance(thinking, str) and thinking:
        responses.append(ThinkingResponse(thinking))
    content = _extract_from_chunk(chunk, "content")
    if isinstance(content, str) and content:
        responses.append(TextResponse(content))
    tool_calls = _extract_from_chunk(chunk, "tool_calls")
    for tc in tool_calls if isinstance(tool_calls, list) else []:
        name, args = _parse_tool_call(tc)
        if name:
            responses.append(FunctionCallResponse(name, args))
    return responses


class OllamaInferenceSession:
    """Collect context chunks and stream one ``chat`` call from them."""

    def __init__(
        self,
        client: Any,
        model: str,
        options: dict[str, Any],
        tools: list[dict[str, Any]],
        think: bool,
        chat_param_names: set[str],
    ) -> None:
        self._client = client
        self._model = model
        self._options = options
        self._tools = tools
        self._think = think
        self._chat_param_names = chat_param_names
        self._messages: list[dict[str, str]] = []
        self.closed = False

    @property
    def messages(self) -> list[dict[str, str]]:
        return list(self._messages)

    async def add_query_chunk(self, chunk: ContextChunk) -> None:
        self._messages.append({"role": chunk.role, "content": chunk.text})

    def _chat_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": list(self._messages),
            "stream": True,
            "options": self._options,
        }
        if self._tools:
            kwargs["tools"] = self._tools
        if self._think:
            kwargs["think"] = True
        # Strip kwargs the SDK doesn't accept (for older ollama versions)
        if self._chat_param_names:
            for optional in ("think", "tools"):
                if optional not in self._chat_param_names:
                    kwargs.pop(optional, None)
        return kwargs

    async def generate_response_stream(self) -> AsyncGenerator[ModelResponse, None]:
        """Stream native responses for the collected chunks.

        The SDK only sends the request once its stream is first iterated, so
        failures up to and including the first chunk count as transport
        failures; later ones propagate unchanged.
        """
        if self.closed:
            raise TransportError("The inference session has been closed.")
        try:
            stream = await self._client.chat(**self._chat_kwargs())
        except Exception as exc:  # noqa: BLE001 - SDK raises several error types.
            raise _map_exception(exc) from exc

        async with aclosing(stream) as chunks:
            try:
                first = await anext(chunks)
            except StopAsyncIteration:
                return
            except Exception as exc:  # noqa: BLE001 - SDK raises several error types.
                raise _map_exception(exc) from exc

            for response in _responses_from_chunk(first):
                yield response
            async for chunk in chunks:
                if self.closed:
                    break
                for response in _responses_from_chunk(chunk):
                    yield response

    async def close(self) -> None:
        self.closed = True
        self._messages.clear()


class OllamaInferenceEngine:
    """Create per-turn sessions against an Ollama model."""

    def __init__(
        self,
        model: str,
        host: str = "http://localhost:11434",
        timeout: int = 120,
        think: bool = False,
        client: Any | None = None,
    ) -> None:
        self.model = model
        self.host = host
        self.think = think
        self._client = client if client is not None else AsyncClient(host=host, timeout=timeout)
        try:
            self._chat_param_names = set(
                inspect.signature(self._client.chat).parameters.keys()
            )
        except (TypeError, ValueError):
            self._chat_param_names = set()

    @staticmethod
    def build_options(sampling: SamplingConfig) -> dict[str, Any]:
        options: dict[str, Any] = {
            "temperature": sampling.temperature,
            "top_k": sampling.top_k,
            "num_predict": sampling.token_buffer,
        }
        if sampling.seed is not None:
            options["seed"] = sampling.seed
        return options

    async def create_session(
        self, sampling: SamplingConfig, tools: Sequence[ToolDescriptor]
    ) -> OllamaInferenceSession:
        LOGGER.debug(
            "ollama.session.create",
            extra={"event": "ollama.session.create", "model": self.model},
        )
        return OllamaInferenceSession(
            client=self._client,
            model=self.model,
            options=self.build_options(sampling),
            tools=[tool.as_function_tool() for tool in tools],
            think=self.think,
            chat_param_names=self._chat_param_names,
        )
