"""
In-process maintenance scheduler.

Runs named coroutines on fixed intervals inside the API process, as an
alternative to the standalone cron entry points when no external scheduler
is available. Each task gets its own loop:

    run task -> wait interval (or stop) -> run task -> ...

A task that raises is logged and retried on its next tick; it never takes
the loop (or other tasks) down. stop() sets an asyncio.Event that every
loop waits on, so shutdown does not wait out a full interval.

Usage:
    scheduler = MaintenanceScheduler()
    scheduler.add_task("stale-lock-sweep", 3600, sweep_fn)
    scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    name: str
    interval_s: float
    func: Callable[[], Awaitable[Any]]
    run_immediately: bool = True
    runs: int = 0
    errors: int = 0
    last_run_at: Optional[float] = None


class MaintenanceScheduler:

    def __init__(self) -> None:
        self._tasks: dict[str, ScheduledTask] = {}
        self._handles: list[asyncio.Task] = []
        self._stop_event = asyncio.Event()

    @property
    def tasks(self) -> dict[str, ScheduledTask]:
        return self._tasks

    @property
    def running(self) -> bool:
        return bool(self._handles)

    def add_task(
        self,
        name: str,
        interval_s: float,
        func: Callable[[], Awaitable[Any]],
        *,
        run_immediately: bool = True,
    ) -> None:
        if name in self._tasks:
            raise ValueError(f"task {name!r} already registered")
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self._tasks[name] = ScheduledTask(name, interval_s, func, run_immediately)

    def start(self) -> None:
        if self._handles:
            return
        self._stop_event.clear()
        for task in self._tasks.values():
            self._handles.append(asyncio.create_task(self._loop(task), name=f"maintenance:{task.name}"))
        logger.info("scheduler: started %d tasks: %s", len(self._handles), ", ".join(self._tasks))

    async def stop(self) -> None:
        self._stop_event.set()
        for handle in self._handles:
            handle.cancel()
        if self._handles:
            await asyncio.gather(*self._handles, return_exceptions=True)
        self._handles = []
        logger.info("scheduler: stopped")

    async def _loop(self, task: ScheduledTask) -> None:
        if not task.run_immediately and await self._wait(task.interval_s):
            return

        while not self._stop_event.is_set():
            await self._run_once(task)
            if await self._wait(task.interval_s):
                return

    async def _run_once(self, task: ScheduledTask) -> None:
        start_ts = time.monotonic()
        try:
            await task.func()
            task.runs += 1
        except asyncio.CancelledError:
            raise
        except Exception:
            task.errors += 1
            logger.exception("scheduler: task %s failed", task.name)
        finally:
            task.last_run_at = time.time()
        logger.debug("scheduler: task %s took %.2fs", task.name, time.monotonic() - start_ts)

    async def _wait(self, interval_s: float) -> bool:
        """Sleep for interval_s. Returns True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=interval_s)
            return True
        except asyncio.TimeoutError:
            return False
