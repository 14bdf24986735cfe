#===============================================================================
#  CDP_Bootstrap_Agent | scheduler.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Cancellable periodic and one-shot delayed tasks on the asyncio loop.
#  Callbacks may be plain functions or coroutines.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

Callback = Callable[[], Any]


def now_ms() -> int:
    """Wall-clock epoch ms; persisted timestamps use this clock."""
    return int(time.time() * 1000)


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


async def _invoke(callback: Callback) -> None:
    result = callback()
    if inspect.isawaitable(result):
        await result


class PeriodicTask:
    """Run ``callback`` every ``interval_s`` seconds until cancelled."""

    def __init__(self, interval_s: float, callback: Callback, name: str = "periodic"):
        self.interval_s = interval_s
        self.callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, run_now: bool = False) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(run_now), name=self.name)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, run_now: bool) -> None:
        if not run_now:
            await asyncio.sleep(self.interval_s)
        while True:
            started = monotonic_ms()
            try:
                await _invoke(self.callback)
            except asyncio.CancelledError:
                raise
            except Exception:
                # one bad tick must not end the loop
                logger.exception("Periodic task %s failed", self.name)
            elapsed = monotonic_ms() - started
            if elapsed > self.interval_s * 1000:
                logger.debug("Periodic task %s overran its interval (%dms)", self.name, elapsed)
            await asyncio.sleep(self.interval_s)


class DelayedTask:
    """Run ``callback`` once after ``delay_s`` seconds unless cancelled."""

    def __init__(self, delay_s: float, callback: Callback, name: str = "delayed"):
        self.delay_s = delay_s
        self.callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "DelayedTask":
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        return self

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        await asyncio.sleep(self.delay_s)
        try:
            await _invoke(self.callback)
        except Exception:
            logger.exception("Delayed task %s failed", self.name)
