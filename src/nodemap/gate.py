"""
gate.py

Rate gate for Last.fm calls.

Every outbound request goes through one FIFO queue drained by one task:
- requests are dispatched one at a time, at least `min_interval` apart
- a throttled request (RateLimited) goes back to the FRONT of the queue and
  the whole queue pauses for `cooldown` before it is retried
- any other failure is handed back to the caller that submitted it

The drain task is started lazily by the first submit and exits when the
queue is empty, so one gate can serve any number of event loops in turn.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Optional, TypeVar

from nodemap.config import (
    LASTFM_COOLDOWN_SECONDS,
    LASTFM_MAX_RETRIES,
    LASTFM_MIN_INTERVAL_SECONDS,
    Settings,
)
from nodemap.errors import RateLimited, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Job:
    fn: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    label: str = ""
    attempts: int = 0


@dataclass
class GateStats:
    dispatched: int = 0
    throttled: int = 0
    sleep_seconds: float = 0.0


class RateGate:
    def __init__(
        self,
        min_interval: float = LASTFM_MIN_INTERVAL_SECONDS,
        cooldown: float = LASTFM_COOLDOWN_SECONDS,
        max_retries: int = LASTFM_MAX_RETRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = max(0.0, float(min_interval))
        self.cooldown = max(0.0, float(cooldown))
        self.max_retries = max_retries
        self._clock = clock
        self._queue: Deque[_Job] = deque()
        self._worker: Optional[asyncio.Task] = None
        self._last_dispatch: Optional[float] = None
        self.stats = GateStats()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateGate":
        return cls(
            min_interval=settings.lastfm_min_interval,
            cooldown=settings.lastfm_cooldown,
            max_retries=settings.lastfm_max_retries,
        )

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def submit(self, fn: Callable[[], Awaitable[T]], label: str = "") -> T:
        """
        Queue `fn` behind every request already waiting and return its result.
        """
        loop = asyncio.get_running_loop()
        job = _Job(fn=fn, future=loop.create_future(), label=label)
        self._queue.append(job)
        self._ensure_worker()
        return await job.future

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain())

    async def _wait_for_slot(self) -> None:
        if self._last_dispatch is None:
            return
        sleep_for = self._last_dispatch + self.min_interval - self._clock()
        if sleep_for > 0:
            await self._sleep(sleep_for)

    async def _sleep(self, seconds: float) -> None:
        self.stats.sleep_seconds += seconds
        await asyncio.sleep(seconds)

    async def _drain(self) -> None:
        while self._queue:
            await self._wait_for_slot()

            job = self._queue.popleft()
            if job.future.done():
                # caller went away
                continue

            job.attempts += 1
            self._last_dispatch = self._clock()
            self.stats.dispatched += 1

            try:
                result = await job.fn()
            except RateLimited as e:
                self.stats.throttled += 1
                if job.attempts > self.max_retries:
                    logger.warning("Giving up on %s after %d throttled attempts", job.label or "request", job.attempts)
                    if not job.future.done():
                        job.future.set_exception(e)
                    continue

                logger.info(
                    "[rate-limit] 429 from Last.fm. Pausing queue %.1fs (attempt %d/%d, %s)",
                    self.cooldown,
                    job.attempts,
                    self.max_retries,
                    job.label or "request",
                )
                self._queue.appendleft(job)
                await self._sleep(max(self.cooldown, e.retry_after or 0.0))
            except asyncio.CancelledError:
                if not job.future.done():
                    job.future.set_exception(UpstreamError("Rate gate closed while the request was in flight"))
                raise
            except Exception as e:
                if not job.future.done():
                    job.future.set_exception(e)
            else:
                if not job.future.done():
                    job.future.set_result(result)

    async def aclose(self) -> None:
        """Stop the drain task and fail everything still queued."""
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

        stranded = list(self._queue)
        self._queue.clear()
        for job in stranded:
            if not job.future.done():
                job.future.set_exception(UpstreamError("Rate gate closed before the request was sent"))
