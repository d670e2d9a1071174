from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from soboss.core.logging import get_logger

JobFunc = Callable[[], Awaitable[None]]


class Scheduler:
    """
    Owns every periodic job of the process.

    Interval jobs go through APScheduler. Fixed-delay loops (next run starts
    `seconds` after the previous one *finished*) are plain asyncio tasks; they
    are cancelled on shutdown. Every job is guarded: an exception is logged
    and the job keeps its schedule.
    """

    def __init__(self, timezone: str) -> None:
        self._scheduler = AsyncIOScheduler(timezone=timezone)
        self._loops: List["asyncio.Task[None]"] = []
        self._pending: List[Tuple[float, JobFunc, Optional[str]]] = []
        self._started = False
        self._log = get_logger(component="scheduler")

    def start(self) -> None:
        self._scheduler.start()
        self._started = True
        for seconds, func, name in self._pending:
            self._spawn_loop(seconds, func, name)
        self._pending = []

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        for task in self._loops:
            task.cancel()
        self._loops = []
        self._started = False

    def every_seconds(self, seconds: float, func: JobFunc, *, name: Optional[str] = None) -> None:
        self._scheduler.add_job(
            _wrap_async(func, name),
            IntervalTrigger(seconds=seconds),
            name=name,
        )
        self._log.info("scheduled", name=name, every_seconds=seconds)

    def fixed_delay(self, seconds: float, func: JobFunc, *, name: Optional[str] = None) -> None:
        """
        Run `func`, wait for it to complete, sleep `seconds`, repeat.
        Runs never overlap; an overrunning run is followed by the next one
        after the same delay, with no catch-up.
        """
        if self._started:
            self._spawn_loop(seconds, func, name)
        else:
            self._pending.append((seconds, func, name))
        self._log.info("scheduled", name=name, delay_seconds=seconds)

    def _spawn_loop(self, seconds: float, func: JobFunc, name: Optional[str]) -> None:
        task = asyncio.get_running_loop().create_task(_fixed_delay_loop(seconds, func, name))
        self._loops.append(task)


async def run_guarded(func: JobFunc, name: Optional[str] = None) -> None:
    try:
        await func()
    except Exception as e:
        get_logger(component="scheduler").exception(
            "job_failed",
            name=name or getattr(func, "__qualname__", "?"),
            error_type="SchedulerError",
            error=str(e),
        )


async def _fixed_delay_loop(seconds: float, func: JobFunc, name: Optional[str]) -> None:
    while True:
        await run_guarded(func, name)
        await asyncio.sleep(seconds)


def _wrap_async(func: JobFunc, name: Optional[str]) -> JobFunc:
    # AsyncIOExecutor awaits coroutine functions on the loop; plain callables go to a thread.
    async def runner() -> None:
        await run_guarded(func, name)

    return runner
