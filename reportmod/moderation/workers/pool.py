"""Bounded task pool dedicated to enrichment loads and notification fan-out."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Coroutine, TypeVar

from reportmod.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ModerationTaskPool:
    """Caps concurrent moderation work independently of the request path.

    Coroutines submitted here must not submit to the same pool and wait on
    the result, otherwise a saturated pool deadlocks.
    """

    def __init__(self, max_concurrency: int, *, name: str = "moderation") -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.name = name
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._background: set[asyncio.Task[Any]] = set()

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        async with self._semaphore:
            obs_metrics.MOD_POOL_TASKS_INFLIGHT.inc()
            try:
                return await awaitable
            finally:
                obs_metrics.MOD_POOL_TASKS_INFLIGHT.dec()

    async def run_all(self, *awaitables: Awaitable[Any]) -> list[Any]:
        """Run concurrently and join; the first failure cancels the rest and propagates."""
        tasks = [asyncio.ensure_future(self._bounded(item)) for item in awaitables]
        if not tasks:
            return []
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        """Schedule fire-and-forget work; failures are logged, never raised to the caller."""
        task = asyncio.get_running_loop().create_task(self._bounded(coro), name=name)
        self._background.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "background moderation task failed",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"task": task.get_name(), "pool": self.name},
            )

    @property
    def pending(self) -> int:
        return len(self._background)

    async def drain(self) -> None:
        """Wait until every spawned task has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._background):
            task.cancel()
        await self.drain()
