"""Serial recompute queue.

This module provides:
- RecomputeQueue: single-worker asyncio job queue with coalescing
- QueueStats: counters for submitted, coalesced, completed and failed jobs

Coalescing policy:
    A job is accepted only when no job is *pending* (queued and not yet
    started). A job that is currently *running* does not count, so a burst of
    triggers during a long recompute yields exactly one follow-up job. Each job
    reads current state when it runs, so the follow-up observes every change
    made before it started.

Jobs run strictly one at a time, in submission order. A failing job is
logged and the worker moves on to the next one.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class QueueStats:
    """Statistics for the recompute queue."""

    submitted: int = 0
    coalesced: int = 0
    completed: int = 0
    failed: int = 0


class RecomputeQueue:
    """Single-worker job queue.

    Usage:
        queue = RecomputeQueue()
        queue.submit(recompute)   # accepted
        queue.submit(recompute)   # coalesced: one job already waiting
        await queue.on_idle()
    """

    def __init__(self, name: str = "recompute") -> None:
        self.name = name
        self._pending: deque[Callable[[], Awaitable[Any]]] = deque()
        self._running = False
        self._worker: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False
        self._stats = QueueStats()

    @property
    def pending(self) -> int:
        """Number of jobs waiting to start (the running job excluded)."""
        return len(self._pending)

    @property
    def running(self) -> bool:
        """Whether a job is currently executing."""
        return self._running

    @property
    def is_idle(self) -> bool:
        return not self._pending and not self._running

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def stats(self) -> QueueStats:
        return self._stats

    def submit(self, job: Callable[[], Awaitable[Any]]) -> bool:
        """Enqueue job unless another job is already waiting.

        Must be called from within a running event loop.

        Returns:
            True if the job was enqueued, False if it was coalesced.

        Raises:
            RuntimeError: If the queue is closed.
        """
        if self._closed:
            raise RuntimeError(f"Queue {self.name!r} is closed")

        if self._pending:
            self._stats.coalesced += 1
            logger.debug("Coalesced %s job (running=%s)", self.name, self._running)
            return False

        self._pending.append(job)
        self._stats.submitted += 1
        self._idle.clear()
        if self._worker is None or self._worker.done():
            self._start_worker()
        logger.debug("Queued %s job (running=%s)", self.name, self._running)
        return True

    def _start_worker(self) -> None:
        self._worker = asyncio.get_running_loop().create_task(
            self._run(), name=f"{self.name}-worker"
        )

    async def _run(self) -> None:
        """Worker loop: drain pending jobs one at a time.

        If a job escapes with a BaseException (e.g. CancelledError) the worker
        dies, and a fresh worker takes over any jobs still pending.
        """
        try:
            while self._pending:
                job = self._pending.popleft()
                self._running = True
                try:
                    await job()
                except Exception:
                    self._stats.failed += 1
                    logger.exception("%s job failed", self.name)
                except BaseException:
                    self._stats.failed += 1
                    raise
                else:
                    self._stats.completed += 1
                finally:
                    self._running = False
        finally:
            if self._pending:
                logger.warning(
                    "%s worker interrupted with %d job(s) pending, restarting",
                    self.name,
                    len(self._pending),
                )
                self._start_worker()
            else:
                self._idle.set()

    async def on_idle(self) -> None:
        """Wait until no job is pending or running."""
        while not self.is_idle:
            await self._idle.wait()

    async def close(self) -> None:
        """Refuse new jobs, then wait for queued jobs to finish."""
        self._closed = True
        await self.on_idle()
        logger.debug("Queue %s closed", self.name)

    def __len__(self) -> int:
        return len(self._pending)
