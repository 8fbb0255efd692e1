"""Timer-driven background tasks on the running event loop."""

import asyncio
import contextlib
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger()


class PeriodicTask:
    """Runs an action every ``interval_seconds`` until stopped.

    The action may be a plain callable or a coroutine function. A failing
    tick is logged and the loop keeps going.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        action: Callable[[], Any] | Callable[[], Awaitable[Any]],
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self._action = action
        self._task: asyncio.Task | None = None
        self.tick_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"periodic:{self.name}")
        logger.info("periodic_task_started", task=self.name, interval=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("periodic_task_stopped", task=self.name, ticks=self.tick_count)

    async def run_once(self) -> None:
        result = self._action()
        if inspect.isawaitable(result):
            await result
        self.tick_count += 1

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception:
                logger.exception("periodic_task_failed", task=self.name)
