"""Fixed-size worker pool draining a bounded queue of WorkItems."""

import asyncio
import logging

from .errors import RecompressError
from .logging import log_with_context
from .metadata import WorkItem
from .processor import FileProcessor, ProcessOutcome
from .state import RunState

# Tells a worker the queue is closed; one is enqueued per worker after the last item
_STOP = object()


class WorkerPool:
    """
    N asyncio workers sharing one bounded queue.

    submit() blocks while the queue is full, which keeps the walker at most
    queue_size items ahead of the workers. A failing item is logged and
    counted but never stops its worker.
    """

    def __init__(
        self,
        processor: FileProcessor,
        run_state: RunState,
        workers: int,
        queue_size: int,
        logger: logging.Logger,
    ):
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        if queue_size < 1:
            raise ValueError(f"queue_size must be >= 1, got {queue_size}")

        self.processor = processor
        self.run_state = run_state
        self.workers = workers
        self.queue_size = queue_size
        self.logger = logger

        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._tasks: list[asyncio.Task] = []
        self._closed = False

        self.stats = {
            "files_queued": 0,
            "files_rewritten": 0,
            "bytes_rewritten": 0,
            "skipped_ignored": 0,
            "skipped_compressed": 0,
            "skipped_handled": 0,
            "errors": 0,
        }
        self.active_workers = 0
        self.max_queue_depth = 0

    def start(self) -> None:
        if self._tasks:
            raise RuntimeError("WorkerPool already started")
        self._tasks = [asyncio.create_task(self._worker(i), name=f"worker-{i}") for i in range(self.workers)]

    async def submit(self, item: WorkItem) -> None:
        """Enqueue an item, waiting for space if the queue is full."""
        if self._closed:
            raise RuntimeError("WorkerPool is closed")
        await self.queue.put(item)
        self.stats["files_queued"] += 1
        self.max_queue_depth = max(self.max_queue_depth, self.queue.qsize())

    async def close(self) -> None:
        """Close the queue and wait until every queued item has been processed."""
        if self._closed:
            return
        self._closed = True
        for _ in self._tasks:
            await self.queue.put(_STOP)
        await asyncio.gather(*self._tasks)

    async def _worker(self, worker_id: int) -> None:
        while True:
            item = await self.queue.get()
            try:
                if item is _STOP:
                    return
                self.active_workers += 1
                try:
                    await self._run_one(item)
                finally:
                    self.active_workers -= 1
            finally:
                self.queue.task_done()

    async def _run_one(self, item: WorkItem) -> None:
        try:
            outcome = await self.processor.process(item)
        except PermissionError as e:
            self._record_failure()
            log_with_context(
                self.logger,
                "warning",
                "Permission denied",
                {"file": str(item.path), "error": str(e)},
            )
        except (OSError, RecompressError) as e:
            self._record_failure()
            log_with_context(
                self.logger,
                "error",
                "Error processing file",
                {"file": str(item.path), "error": str(e), "error_type": type(e).__name__},
            )
        except Exception as e:
            # A bug must not kill the worker, or close() would wait forever on its stop marker
            self._record_failure()
            self.logger.exception(f"Unexpected exception processing {item.path}: {e}")
        else:
            self.stats[outcome.value] += 1
            if outcome is ProcessOutcome.REWRITTEN:
                self.stats["bytes_rewritten"] += item.stat.st_size

    def _record_failure(self) -> None:
        self.stats["errors"] += 1
        self.run_state.mark_failed()
