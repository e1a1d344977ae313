"""Remote chat-completion API adapter (OpenRouter / LiteLLM compatible)."""

from __future__ import annotations

from collections.abc import AsyncGenerator
import logging
from typing import Any

import httpx

from ..decoder import LineStreamDecoder
from ..exceptions import TransportError
from ..tooling import ToolRegistryProtocol
from .base import BaseProvider, ProviderRequestContext, SamplingConfig

LOGGER = logging.getLogger(__name__)


class RemoteApiAdapter(BaseProvider):
    """Stream replies from ``POST {base_url}/chat/completions``.

    The whole conversation is sent on every turn; the server keeps nothing
    between requests.
    """

    name = "remote"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        tool_registry: ToolRegistryProtocol | None = None,
        sampling: SamplingConfig | None = None,
        referer: str = "",
        title: str = "",
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(tool_registry=tool_registry, sampling=sampling)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.referer = referer
        self.title = title
        self.decoder = LineStreamDecoder()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def build_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        # Optional attribution headers understood by OpenRouter.
        if self.referer:
            headers["HTTP-Referer"] = self.referer
        if self.title:
            headers["X-Title"] = self.title
        return headers

    @staticmethod
    def build_messages(context: ProviderRequestContext) -> list[dict[str, str]]:
        return [{"role": chunk.role, "content": chunk.text} for chunk in context.chunks()]

    async def build_payload(self, context: ProviderRequestContext) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self.build_messages(context),
            "stream": True,
            "temperature": context.sampling.temperature,
            "max_tokens": context.sampling.max_tokens,
        }
        if context.sampling.seed is not None:
            payload["seed"] = context.sampling.seed

        tools = await self.list_available_tools()
        if tools:
            payload["tools"] = [tool.as_function_tool() for tool in tools]
        return payload

    async def open_stream(
        self, context: ProviderRequestContext
    ) -> AsyncGenerator[str, None]:
        if context.attachments:
            LOGGER.debug(
                "remote.attachments.ignored",
                extra={
                    "event": "remote.attachments.ignored",
                    "count": len(context.attachments),
                },
            )
        payload = await self.build_payload(context)
        LOGGER.info(
            "remote.request.start",
            extra={
                "event": "remote.request.start",
                "model": self.model,
                "messages": len(payload["messages"]),
                "tools": len(payload.get("tools", [])),
            },
        )

        established = False
        try:
            async with self._client.stream(
                "POST", self.endpoint, headers=self.build_headers(), json=payload
            ) as response:
                if not response.is_success:
                    body = await response.aread()
                    LOGGER.warning(
                        "remote.request.failed",
                        extra={
                            "event": "remote.request.failed",
                            "status": response.status_code,
                            "body": body.decode("utf-8", errors="replace")[:500],
                        },
                    )
                    raise TransportError(
                        f"Failed to get response from AI ({response.status_code})"
                    )
                established = True
                async for line in response.aiter_lines():
                    yield line
        except httpx.HTTPError as exc:
            if established:
                raise
            raise TransportError(
                f"Unable to connect to {self.endpoint}: {exc}"
            ) from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
