"""Hand-off between the webhook endpoint and the message pipeline.

The endpoint only enqueues and acknowledges; worker tasks drain the queue and
run the pipeline for each event independently.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.webhook.pipeline import MessagePipeline

logger = logging.getLogger(__name__)

_SHUTDOWN_TIMEOUT_SECONDS = 10.0


class EventDispatcher:
    """Bounded in-memory queue consumed by a fixed pool of worker tasks.

    Not durable: events still queued when the process dies are lost.
    """

    def __init__(
        self,
        pipeline: MessagePipeline,
        workers: int = 4,
        max_queue_size: int = 1000,
    ) -> None:
        self._pipeline = pipeline
        self._worker_count = workers
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=max_queue_size)
        self._workers: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Spawn workers on the running loop. Safe to call more than once."""
        if self.running:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"pipeline-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("Started %d pipeline workers", self._worker_count)

    def submit(self, raw: object) -> bool:
        """Queue an event without waiting. Returns False if it was dropped."""
        self.start()
        try:
            self._queue.put_nowait(raw)
        except asyncio.QueueFull:
            logger.warning(
                "Event queue full (%d pending), dropping event", self._queue.qsize(),
            )
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued event has been processed."""
        await self._queue.join()

    async def stop(self, timeout: float = _SHUTDOWN_TIMEOUT_SECONDS) -> None:
        """Drain the queue for up to ``timeout`` seconds, then cancel workers."""
        if self._workers:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except TimeoutError:
                logger.error(
                    "Forced shutdown after %.0fs with %d events pending",
                    timeout, self._queue.qsize(),
                )
        for task in self._workers:
            task.cancel()
        for task in self._workers:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._workers = []

    async def _worker(self, index: int) -> None:
        while True:
            raw = await self._queue.get()
            try:
                await self._pipeline.process_event(raw)
            except Exception:
                logger.error("Pipeline worker %d caught unhandled error", index, exc_info=True)
            finally:
                self._queue.task_done()
