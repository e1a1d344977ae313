"""Tests for the remote chat-completion adapter."""

from __future__ import annotations

import json
import unittest

import httpx

from dualchat.events import Done, TextDelta, ToolCallFragment
from dualchat.exceptions import TransportError
from dualchat.history import Message
from dualchat.providers.base import ProviderRequestContext, SamplingConfig
from dualchat.providers.remote import RemoteApiAdapter
from dualchat.tooling import ToolRegistry


def _sse_body(*deltas: dict, done: bool = True) -> bytes:
    lines = [f"data: {json.dumps({'choices': [{'delta': d}]})}\n\n" for d in deltas]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def lookup(city: str) -> str:
    """Look up a city."""
    return city


class RecordingHandler:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, response: httpx.Response | Exception) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    @property
    def payload(self) -> dict:
        return json.loads(self.requests[-1].content)


def _adapter(handler: RecordingHandler, **kwargs) -> RemoteApiAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RemoteApiAdapter(
        base_url="https://api.example.test/v1/",
        api_key="sk-test",
        model="test/model",
        client=client,
        **kwargs,
    )


def _context(**kwargs) -> ProviderRequestContext:
    defaults = {
        "system_prompt": "Be brief.",
        "history": (Message.user("a"), Message.assistant("b")),
        "prompt": "c",
    }
    defaults.update(kwargs)
    return ProviderRequestContext(**defaults)


async def _collect(adapter: RemoteApiAdapter, context: ProviderRequestContext) -> list:
    return [event async for event in adapter.stream_events(context)]


class RemoteApiAdapterTests(unittest.IsolatedAsyncioTestCase):
    """Validate the request shape and the streamed event decoding."""

    async def test_request_replays_history_with_headers(self) -> None:
        handler = RecordingHandler(
            httpx.Response(200, content=_sse_body({"content": "Hi"}, {"content": "!"}))
        )
        adapter = _adapter(handler, referer="https://app.example", title="dualchat")

        events = await _collect(adapter, _context())

        self.assertEqual(events, [TextDelta("Hi"), TextDelta("!"), Done()])
        request = handler.requests[0]
        self.assertEqual(str(request.url), "https://api.example.test/v1/chat/completions")
        self.assertEqual(request.headers["Authorization"], "Bearer sk-test")
        self.assertEqual(request.headers["HTTP-Referer"], "https://app.example")
        self.assertEqual(request.headers["X-Title"], "dualchat")
        self.assertEqual(
            handler.payload,
            {
                "model": "test/model",
                "messages": [
                    {"role": "system", "content": "Be brief."},
                    {"role": "user", "content": "a"},
                    {"role": "assistant", "content": "b"},
                    {"role": "user", "content": "c"},
                ],
                "stream": True,
                "temperature": 0.7,
                "max_tokens": 2048,
            },
        )

    async def test_tools_and_seed_sent_only_when_present(self) -> None:
        handler = RecordingHandler(httpx.Response(200, content=_sse_body()))
        registry = ToolRegistry()
        adapter = _adapter(handler, tool_registry=registry)

        await _collect(adapter, _context())
        self.assertNotIn("tools", handler.payload)
        self.assertNotIn("seed", handler.payload)

        registry.register(lookup)
        await _collect(adapter, _context(sampling=SamplingConfig(seed=7)))
        self.assertEqual(handler.payload["seed"], 7)
        self.assertEqual(handler.payload["tools"][0]["type"], "function")
        self.assertEqual(handler.payload["tools"][0]["function"]["name"], "lookup")

    async def test_streamed_tool_call_fragments(self) -> None:
        body = _sse_body(
            {"tool_calls": [{"index": 0, "id": "c1", "function": {"name": "get", "arguments": '{"x"'}}]},
            {"tool_calls": [{"index": 0, "function": {"arguments": ":1}"}}]},
        )
        adapter = _adapter(RecordingHandler(httpx.Response(200, content=body)))

        events = await _collect(adapter, _context())
        self.assertEqual(
            events,
            [
                ToolCallFragment(index=0, call_id="c1", name="get", arguments='{"x"'),
                ToolCallFragment(index=0, arguments=":1}"),
                Done(),
            ],
        )

    async def test_non_success_status_raises_transport_error(self) -> None:
        adapter = _adapter(RecordingHandler(httpx.Response(500, text="upstream down")))
        with self.assertLogs("dualchat.providers.remote", level="WARNING"):
            with self.assertRaises(TransportError) as ctx:
                await _collect(adapter, _context())
        self.assertEqual(str(ctx.exception), "Failed to get response from AI (500)")

    async def test_connection_failure_raises_transport_error(self) -> None:
        adapter = _adapter(RecordingHandler(httpx.ConnectError("refused")))
        with self.assertRaises(TransportError) as ctx:
            await _collect(adapter, _context())
        self.assertIsInstance(ctx.exception.__cause__, httpx.ConnectError)

    async def test_aclose_leaves_injected_client_open(self) -> None:
        handler = RecordingHandler(httpx.Response(200, content=_sse_body()))
        adapter = _adapter(handler)
        await adapter.aclose()
        self.assertFalse(adapter._client.is_closed)
        await adapter._client.aclose()


if __name__ == "__main__":
    unittest.main()
