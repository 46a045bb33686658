"""
    Processing Queue module

    Serializes scan requests: a single worker drains the queue FIFO and
    finishes one scan (its whole extractor fallback chain) before starting
    the next, so at most one scan is ever in flight.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from receipt_pipeline.config import QUEUE_MAX_SIZE
from receipt_pipeline.exceptions import QueueFullError
from receipt_pipeline.receipt_schemas import ReceiptRecord
from receipt_pipeline.utils.helpers import ImageRef


logger = logging.getLogger(__name__)

ScanHandler = Callable[[ImageRef], Awaitable[ReceiptRecord]]


@dataclass
class QueueItem:
    image: ImageRef
    future: asyncio.Future


class ProcessingQueue:
    """FIFO queue with one worker; max_size=0 means unbounded"""

    def __init__(self, handler: ScanHandler, max_size: int = QUEUE_MAX_SIZE):
        self._handler = handler
        self.max_size = max_size
        self._queue: "asyncio.Queue[QueueItem]" = asyncio.Queue(maxsize=max_size)
        self._worker: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the worker on the running loop (idempotent)"""
        if not self.running:
            self._worker = asyncio.get_running_loop().create_task(self._run(), name='receipt-scan-worker')
            logger.info("Processing queue worker started")

    async def enqueue(self, image: ImageRef) -> ReceiptRecord:
        """Queue a scan and wait for its turn and result"""
        self.start()

        future = asyncio.get_running_loop().create_future()
        try:
            self._queue.put_nowait(QueueItem(image=image, future=future))
        except asyncio.QueueFull:
            logger.warning(f"Rejecting scan of {image}: queue full ({self.max_size})")
            raise QueueFullError(self.max_size)

        logger.info(f"Queued scan of {image} (pending: {self._queue.qsize()})")
        return await future

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                result = await self._handler(item.image)
            except asyncio.CancelledError:
                item.future.cancel()
                raise
            except Exception as e:
                if not item.future.done():
                    item.future.set_exception(e)
            else:
                if not item.future.done():
                    item.future.set_result(result)
            finally:
                self._queue.task_done()

    async def stop(self) -> None:
        """Stop the worker and cancel scans still waiting"""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        while not self._queue.empty():
            item = self._queue.get_nowait()
            item.future.cancel()
            self._queue.task_done()

        logger.info("Processing queue worker stopped")
