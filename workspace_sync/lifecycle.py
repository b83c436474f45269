"""Teardown coordination for sync clients."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class CleanupService:
    """Runs registered teardown callbacks once, at shutdown.

    Callbacks run in registration order. A failing callback is logged
    and does not prevent the remaining ones from running. Callbacks
    added after ``cleanup()`` has run are invoked immediately.

    A callback may return an awaitable (``channel.close`` does); it is
    scheduled on the running loop and ``wait()`` resolves once all such
    work has finished.
    """

    def __init__(self) -> None:
        self._callbacks: list[Callable[[], Awaitable[None] | None]] = []
        self._tasks: set[asyncio.Future[None]] = set()
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def add(self, callback: Callable[[], Awaitable[None] | None]) -> None:
        if self._done:
            self._run(callback)
            return
        self._callbacks.append(callback)

    def cleanup(self) -> None:
        if self._done:
            return
        self._done = True

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._run(callback)
        logger.debug(f"Cleanup finished: {len(callbacks)} callbacks")

    async def wait(self) -> None:
        """Wait for awaitables returned by callbacks to complete."""
        while self._tasks:
            await asyncio.wait(list(self._tasks))

    def _run(self, callback: Callable[[], Awaitable[None] | None]) -> None:
        try:
            result = callback()
        except Exception:
            logger.exception(f"Cleanup callback {callback!r} failed")
            return

        if inspect.isawaitable(result):
            try:
                task = asyncio.ensure_future(result)
            except RuntimeError:
                logger.error(f"Cleanup callback {callback!r} needs a running event loop")
                if inspect.iscoroutine(result):
                    result.close()
                return
            self._tasks.add(task)
            task.add_done_callback(self._task_finished)

    def _task_finished(self, task: asyncio.Future[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Cleanup task failed: {task.exception()!r}")
