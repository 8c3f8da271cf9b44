"""
In-process notification queue.

Request handlers enqueue job batches and return immediately; a single
consumer task (started in the app lifespan) drains batches and hands each to
the dispatcher. Delivery is not guaranteed: batches still queued when the
process dies are lost, and nothing is retried.
"""
import asyncio
import logging
from typing import Optional

from paynotify.services.notification_templates import NotificationJob
from paynotify.utils.logging import get_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 1000
SHUTDOWN_GRACE_SECONDS = 10.0


class NotificationQueue:
    def __init__(self, dispatcher, max_size: int = DEFAULT_MAX_SIZE):
        self.dispatcher = dispatcher
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_size)
        self._consumer: Optional[asyncio.Task] = None
        self._detached: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, jobs: list[NotificationJob]) -> bool:
        """
        Hand a batch to the consumer without waiting for it to be sent.
        Returns False when the batch was dropped or there was nothing to send.
        """
        if not jobs:
            return False
        batch = (get_correlation_id(), list(jobs))

        if not self.running:
            # No consumer (scripts, tests): run the batch as a detached task
            task = asyncio.create_task(self._run_batch(*batch))
            self._detached.add(task)
            task.add_done_callback(self._detached.discard)
            return True

        try:
            self._queue.put_nowait(batch)
        except asyncio.QueueFull:
            logger.error(
                "Notification queue full (%d batches); dropping %d job(s)",
                self._queue.maxsize, len(jobs),
            )
            return False
        return True

    async def _run_batch(self, correlation_id: Optional[str], jobs: list[NotificationJob]) -> list[dict]:
        if correlation_id:
            set_correlation_id(correlation_id)
        try:
            results = await self.dispatcher.send_all(jobs)
        except Exception as e:
            logger.error("Notification batch failed: %s", str(e), exc_info=True)
            return []
        sent = sum(1 for r in results if r["success"])
        logger.info("Notification batch complete: %d/%d sent", sent, len(results))
        return results

    async def _consume(self) -> None:
        logger.info("Notification consumer started")
        while True:
            correlation_id, jobs = await self._queue.get()
            try:
                await self._run_batch(correlation_id, jobs)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        if not self.running:
            self._consumer = asyncio.create_task(self._consume())

    async def join(self) -> None:
        """Wait until every queued and detached batch has been processed."""
        await self._queue.join()
        if self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)

    async def stop(self, grace_seconds: float = SHUTDOWN_GRACE_SECONDS) -> None:
        """Drain outstanding batches for up to grace_seconds, then cancel."""
        if self._consumer is None:
            return
        try:
            await asyncio.wait_for(self.join(), timeout=grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Notification queue shutdown timed out with %d batch(es) pending",
                self._queue.qsize(),
            )
        self._consumer.cancel()
        await asyncio.gather(self._consumer, return_exceptions=True)
        self._consumer = None
        logger.info("Notification consumer stopped")
