"""Cancellable periodic tick used to drive an attempt's timer."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[bool]]


class Countdown:
    """Calls ``on_tick`` every ``interval_seconds`` until it returns False or is cancelled.

    Owned by exactly one session. Cancelling from inside ``on_tick`` only stops
    future ticks, so work started by the current tick (such as submitting the
    attempt) runs to completion.
    """

    def __init__(self, on_tick: TickCallback, interval_seconds: float) -> None:
        self._on_tick = on_tick
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._stopped = False

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("Countdown already started.")
        self._task = asyncio.get_running_loop().create_task(self._run(), name="attempt-countdown")

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

    async def _run(self) -> None:
        try:
            while not self._stopped:
                await asyncio.sleep(self._interval)
                if self._stopped:
                    break
                keep_running = await self._on_tick()
                if not keep_running:
                    break
        except asyncio.CancelledError:
            logger.debug("Countdown cancelled")
            raise
        except Exception:
            logger.exception("Countdown tick failed; timer stopped")
        finally:
            self._stopped = True
