"""
backend/app/services/background_tasks.py

Purpose:
    Registry for fire-and-forget coroutines spawned from request handling
    (snapshot writes). Holds a strong reference to every pending task so the
    event loop cannot garbage-collect it mid-flight, logs failures instead of
    letting them vanish, and drains or cancels what is left on shutdown.

Dependencies:
    - asyncio
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger("matchintel.background")


class BackgroundTaskRegistry:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self._stopping = False
        self._spawned = 0
        self._failed = 0

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task | None:
        if self._stopping:
            coro.close()
            logger.debug("Registry stopping, dropped background task %s", name)
            return None
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        self._spawned += 1
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._failed += 1
            logger.error(
                "Background task %s failed: %s", task.get_name(), exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def stats(self) -> dict[str, int]:
        return {"pending": len(self._tasks), "spawned": self._spawned, "failed": self._failed}

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for pending tasks; anything still running after ``timeout`` is cancelled."""
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("Cancelled %d background task(s) on drain", len(pending))

    async def stop(self, timeout: float = 5.0) -> None:
        self._stopping = True
        await self.drain(timeout)
        logger.info("Background task registry stopped (%s)", self.stats())
