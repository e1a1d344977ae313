"""Local inference adapter: replays the whole conversation into a fresh engine session."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence
from contextlib import aclosing
from dataclasses import replace
import logging
import random
from typing import Protocol, runtime_checkable

from ..decoder import NativeStreamDecoder
from ..exceptions import SessionBusyError, TransportError
from ..responses import ModelResponse
from ..task_manager import TaskManager
from ..tooling import ToolDescriptor, ToolRegistryProtocol
from .base import BaseProvider, ContextChunk, ProviderRequestContext, SamplingConfig

LOGGER = logging.getLogger(__name__)

_MAX_SEED = 2**31 - 1


@runtime_checkable
class InferenceSession(Protocol):
    """One engine conversation; nothing survives ``close``."""

    async def add_query_chunk(self, chunk: ContextChunk) -> None:
        ...

    def generate_response_stream(self) -> AsyncGenerator[ModelResponse, None]:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class InferenceEngine(Protocol):
    async def create_session(
        self, sampling: SamplingConfig, tools: Sequence[ToolDescriptor]
    ) -> InferenceSession:
        ...


class LocalInferenceAdapter(BaseProvider):
    """Drive an on-device engine that keeps no memory between turns.

    Every turn creates a new engine session, submits the system prompt, each
    prior message and the current prompt as separate context chunks, and then
    streams the engine's native responses. The session is owned by this
    adapter and is never shared between two turns.
    """

    name = "local"

    def __init__(
        self,
        engine: InferenceEngine,
        tool_registry: ToolRegistryProtocol | None = None,
        sampling: SamplingConfig | None = None,
        rng: random.Random | None = None,
        task_manager: TaskManager | None = None,
    ) -> None:
        super().__init__(tool_registry=tool_registry, sampling=sampling)
        self.engine = engine
        self.decoder = NativeStreamDecoder()
        self._rng = rng or random.Random()
        self._tasks = task_manager or TaskManager()
        self._session: InferenceSession | None = None

    @property
    def session_open(self) -> bool:
        return self._session is not None

    def turn_sampling(self, sampling: SamplingConfig) -> SamplingConfig:
        """Return ``sampling`` with a fresh seed so turns do not repeat themselves."""
        return replace(sampling, seed=self._rng.randint(0, _MAX_SEED))

    async def open_stream(
        self, context: ProviderRequestContext
    ) -> AsyncGenerator[ModelResponse, None]:
        if self._session is not None:
            raise SessionBusyError("The local inference session is already in use.")

        sampling = self.turn_sampling(context.sampling)
        tools = await self.list_available_tools()
        try:
            session = await self.engine.create_session(sampling, tools)
        except TransportError:
            raise
        except Exception as exc:  # noqa: BLE001 - engine start-up can fail in many ways.
            raise TransportError(
                f"Unable to create local inference session: {exc}"
            ) from exc
        self._session = session

        chunks = context.chunks()
        LOGGER.info(
            "local.session.open",
            extra={
                "event": "local.session.open",
                "chunks": len(chunks),
                "tools": len(tools),
                "seed": sampling.seed,
            },
        )
        try:
            for chunk in chunks:
                await session.add_query_chunk(chunk)
            async with aclosing(session.generate_response_stream()) as responses:
                async for response in responses:
                    yield response
        finally:
            # reset() may already have detached the session and scheduled its close.
            if self._session is session:
                self._session = None
                await session.close()
                LOGGER.debug(
                    "local.session.closed",
                    extra={"event": "local.session.closed"},
                )

    def reset(self) -> None:
        """Detach any open session and close it in the background."""
        session = self._session
        if session is None:
            return
        self._session = None
        self._tasks.spawn(session.close(), name="local.session.release")
        LOGGER.info(
            "local.session.released",
            extra={"event": "local.session.released"},
        )

    async def aclose(self) -> None:
        self.reset()
        await self._tasks.await_all()
