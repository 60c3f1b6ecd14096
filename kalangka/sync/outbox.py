"""In-process outbox of sync tasks consumed by a single worker."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from kalangka.sync.schemas import SyncOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncTask:
    """One unit of background sync work.

    Attributes:
        kind: Entity kind name.
        record_id: Record to sync, or None for a full sweep of the kind.
        attempt: Number of previous failed attempts.
    """

    kind: str
    record_id: str | None = None
    attempt: int = 0

    @property
    def is_sweep(self) -> bool:
        return self.record_id is None


TaskHandler = Callable[[SyncTask], Awaitable[Any]]


class SyncOutbox:
    """Queue of sync tasks processed one at a time.

    Repositories enqueue without waiting; the worker hands each task to the
    handler (normally the engine's dispatcher). A task whose handler returns
    ``SyncOutcome.FAILED`` or raises is retried with exponential backoff while
    ``attempt < max_retries``.

    Attributes:
        max_retries: Retries for a failed single-record task.
        retry_backoff: Base delay in seconds; attempt n waits backoff * 2**n.
    """

    def __init__(
        self,
        handler: TaskHandler | None = None,
        max_retries: int = 0,
        retry_backoff: float = 5.0,
    ):
        self._handler = handler
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._queue: asyncio.Queue[SyncTask] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._retries: set[asyncio.Task] = set()

    def set_handler(self, handler: TaskHandler) -> None:
        self._handler = handler

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        """Tasks waiting in the queue."""
        return self._queue.qsize()

    def enqueue(self, kind: str, record_id: str | None = None, attempt: int = 0) -> SyncTask:
        """Queue a task without blocking.

        Args:
            kind: Entity kind name.
            record_id: Record id, or None for a sweep of the whole kind.
            attempt: Previous failed attempts.

        Returns:
            SyncTask: The queued task.
        """
        task = SyncTask(kind=kind, record_id=record_id, attempt=attempt)
        self._queue.put_nowait(task)
        return task

    async def start(self) -> None:
        """Spawn the worker loop."""
        if self.is_running:
            return
        if self._handler is None:
            raise RuntimeError("SyncOutbox has no task handler")
        self._worker = asyncio.create_task(self._run(), name="kalangka-sync-outbox")
        logger.info("Sync outbox started")

    async def stop(self) -> None:
        """Cancel the worker and every scheduled retry."""
        tasks = list(self._retries)
        if self._worker is not None:
            tasks.append(self._worker)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._worker = None
        self._retries.clear()
        logger.info("Sync outbox stopped")

    async def join(self) -> None:
        """Wait until every queued task has been processed."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            task = await self._queue.get()
            try:
                await self.process(task)
            finally:
                self._queue.task_done()

    async def process(self, task: SyncTask) -> Any:
        """Run one task through the handler, scheduling a retry on failure.

        Returns:
            Any: The handler's result, or ``SyncOutcome.FAILED`` if it raised.
        """
        try:
            result = await self._handler(task)
        except Exception:
            logger.exception(f"Sync task {task} failed")
            result = SyncOutcome.FAILED

        if result is SyncOutcome.FAILED and not task.is_sweep:
            if task.attempt < self.max_retries:
                self._schedule_retry(task)
            else:
                logger.info(
                    f"{task.kind} {task.record_id} stays unsynced until the next sweep"
                )
        return result

    def _schedule_retry(self, task: SyncTask) -> None:
        delay = self.retry_backoff * 2**task.attempt
        logger.info(f"Retrying {task.kind} {task.record_id} in {delay:.1f}s")
        retry = asyncio.create_task(self._retry_later(task, delay))
        self._retries.add(retry)
        retry.add_done_callback(self._retries.discard)

    async def _retry_later(self, task: SyncTask, delay: float) -> None:
        await asyncio.sleep(delay)
        self.enqueue(task.kind, task.record_id, attempt=task.attempt + 1)
