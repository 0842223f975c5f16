"""
services/batch_worker.py
Queue of batch ids consumed by a fixed pool of asyncio workers.

A batch id is accepted only once while it is queued or running, and each
running batch gets an Event an operator can set to stop it early.
"""
import asyncio
from typing import Dict, List, Optional, Set

from app.core.config import settings
from app.core.exceptions import CertificateServiceError
from app.services.batch_orchestrator import BatchOrchestrator
from app.utils.helpers import get_logger

logger = get_logger(__name__)


class BatchWorkerPool:
    def __init__(self, orchestrator: BatchOrchestrator, concurrency: int = settings.WORKER_CONCURRENCY):
        self.orchestrator = orchestrator
        self.concurrency = max(1, concurrency)
        self._queue: Optional[asyncio.Queue] = None
        self._queued: Set[str] = set()
        self._dropped: Set[str] = set()
        self._running: Dict[str, asyncio.Event] = {}
        self._workers: List[asyncio.Task] = []

    @property
    def started(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        if self._workers:
            return
        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"batch-worker-{n}")
            for n in range(self.concurrency)
        ]
        logger.info(f"Started {self.concurrency} batch workers.")

    async def stop(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Batch workers stopped.")

    async def join(self) -> None:
        """Wait until every queued batch has been processed."""
        if self._queue is not None:
            await self._queue.join()

    def enqueue(self, batch_id: str) -> bool:
        """Queue a batch; False if it is already queued or running."""
        if self._queue is None:
            raise RuntimeError("Worker pool is not started.")
        if batch_id in self._queued or batch_id in self._running:
            return False
        self._queued.add(batch_id)
        if batch_id in self._dropped:
            # still sitting in the queue
            self._dropped.discard(batch_id)
        else:
            self._queue.put_nowait(batch_id)
        logger.info(f"[{batch_id}] Queued for generation.")
        return True

    def cancel(self, batch_id: str) -> bool:
        """Stop a running batch after its current record, or drop it from the queue."""
        event = self._running.get(batch_id)
        if event is not None:
            event.set()
            logger.info(f"[{batch_id}] Cancellation requested.")
            return True
        if batch_id in self._queued:
            self._queued.discard(batch_id)
            self._dropped.add(batch_id)
            logger.info(f"[{batch_id}] Removed from queue.")
            return True
        return False

    def is_active(self, batch_id: str) -> bool:
        return batch_id in self._queued or batch_id in self._running

    async def _worker(self, number: int) -> None:
        while True:
            batch_id = await self._queue.get()
            try:
                if batch_id in self._dropped:
                    self._dropped.discard(batch_id)
                    continue
                self._queued.discard(batch_id)
                await self._run(batch_id)
            finally:
                self._queue.task_done()

    async def _run(self, batch_id: str) -> None:
        event = asyncio.Event()
        self._running[batch_id] = event
        try:
            result = await self.orchestrator.run_batch(batch_id, cancel_event=event)
            logger.info(f"[{batch_id}] Worker finished: {result.processed}/{result.total} generated.")
        except CertificateServiceError as e:
            logger.warning(f"[{batch_id}] Worker could not run batch: {e.message}")
        except Exception as e:
            logger.error(f"[{batch_id}] Worker crashed on batch: {e}", exc_info=True)
        finally:
            self._running.pop(batch_id, None)
