"""
Cancellable interval timer and deadline-bounded polling.

Both the cache refresh scheduler and the confirmation/bundle pollers are
built on these two primitives so that cancellation and deadlines behave the
same way everywhere.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from swapcache.core.json_utils import dumps

log = logging.getLogger("swapcache")

T = TypeVar("T")


class IntervalTimer:
    """
    Runs `callback` every `interval` seconds on the event loop.

    The callback returns True to keep the timer running, False to stop it.
    `cancel()` is safe to call from inside the callback: the loop exits after
    the callback returns instead of cancelling its own task mid-flight.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], Awaitable[bool]],
        name: str = "interval-timer",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.interval = interval
        self.name = name
        self._callback = callback
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._stopped = False
        self.ticks = 0

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    def start(self) -> None:
        if self._task is not None:
            return
        self._stopped = False
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def cancel(self) -> None:
        self._stopped = True
        task = self._task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def wait(self) -> None:
        """Wait for the timer task to finish (after cancel or a False tick)."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self) -> None:
        try:
            while not self._stopped:
                await self._sleep(self.interval)
                if self._stopped:
                    break
                self.ticks += 1
                try:
                    keep = await self._callback()
                except Exception as exc:
                    # a failing tick never kills the timer; the callback owns its policy
                    log.error(dumps({"event": "timer_tick_error", "timer": self.name, "err": str(exc)}))
                    keep = True
                if not keep:
                    self._stopped = True
        except asyncio.CancelledError:
            self._stopped = True
            raise


@dataclass
class PollOutcome(Generic[T]):
    value: Optional[T]
    timed_out: bool
    attempts: int
    elapsed: float


async def poll_until(
    check: Callable[[], Awaitable[Optional[T]]],
    *,
    interval: float,
    timeout: float,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_error: Optional[Callable[[Exception], None]] = None,
) -> PollOutcome[T]:
    """
    Call `check` until it returns a non-None value or `timeout` elapses.

    The check always runs at least once. Exceptions raised by the check are
    handed to `on_error` and polling continues; they never end the poll early.
    """
    start = clock()
    deadline = start + timeout
    attempts = 0
    while True:
        attempts += 1
        try:
            value = await check()
        except Exception as exc:
            if on_error is not None:
                on_error(exc)
            value = None
        if value is not None:
            return PollOutcome(value=value, timed_out=False, attempts=attempts, elapsed=clock() - start)
        remaining = deadline - clock()
        if remaining <= 0:
            return PollOutcome(value=None, timed_out=True, attempts=attempts, elapsed=clock() - start)
        await sleep(min(interval, remaining))
