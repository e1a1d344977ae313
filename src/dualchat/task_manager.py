"""Structured lifecycle manager for fire-and-forget asyncio tasks."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class TaskManager:
    """Keep background tasks alive until they finish and report their failures.

    Used for best-effort release of async resources from synchronous code
    paths: the release is scheduled, not awaited, so it may complete after
    the synchronous caller has returned.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def add(self, task: asyncio.Task[Any]) -> None:
        """Register a task; it self-cleans when it completes."""
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._log_exception)

    def spawn(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any] | None:
        """Schedule ``coro`` on the running loop without awaiting it.

        Returns ``None`` (and closes the coroutine) when no loop is running,
        since there is nothing left to release resources on.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            LOGGER.debug(
                "task.spawn.no_loop",
                extra={"event": "task.spawn.no_loop", "task": name},
            )
            return None
        task = loop.create_task(coro, name=name)
        self.add(task)
        return task

    def _log_exception(self, task: asyncio.Task[Any]) -> None:
        """Log unhandled exceptions from background tasks so they are not silently lost."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning(
                "task.background.exception",
                extra={
                    "event": "task.background.exception",
                    "task": task.get_name(),
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    async def await_all(self) -> None:
        """Await all tracked tasks without cancelling them."""
        for task in list(self._tasks):
            if not task.done():
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception:  # noqa: BLE001 - already logged by the done callback.
                    pass

    async def cancel_all(self) -> None:
        """Cancel every tracked task and await them all."""
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
