"""
Bounded worker pool for server-side uploads.

A fixed number of threads drain a bounded queue, so backpressure and
shutdown draining are explicit rather than left to unmanaged threads.
"""
import logging
import queue
import threading
from typing import Callable, List, Optional

from ..core.errors import QueueFullError

logger = logging.getLogger(__name__)

_STOP = object()


class UploadWorkerPool:

    def __init__(self, worker_count: int = 4, queue_capacity: int = 200, name: str = "MultipartUpload"):
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        self.worker_count = worker_count
        self.name = name
        self._queue: "queue.Queue" = queue.Queue(maxsize=queue_capacity)
        self._threads: List[threading.Thread] = []
        self._started = False
        self._lock = threading.Lock()

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            for i in range(self.worker_count):
                thread = threading.Thread(target=self._run, name=f"{self.name}-{i + 1}", daemon=True)
                thread.start()
                self._threads.append(thread)
            self._started = True
        logger.info(f"Started {self.worker_count} upload workers")

    def submit(self, fn: Callable, *args, timeout: Optional[float] = None) -> None:
        """
        Queue fn(*args) for a worker.

        Raises:
            QueueFullError: If the pool is not running or the queue stays full past timeout
        """
        if not self._started:
            raise QueueFullError("Upload workers are not accepting work")
        try:
            self._queue.put((fn, args), block=timeout is not None, timeout=timeout)
        except queue.Full as e:
            logger.warning(f"Upload queue full ({self._queue.maxsize} pending)")
            raise QueueFullError("Too many uploads in progress, try again later") from e

    def join(self) -> None:
        """Block until every queued job has finished."""
        self._queue.join()

    def shutdown(self, wait: bool = True) -> None:
        """Let queued jobs drain, then stop the workers."""
        with self._lock:
            if not self._started:
                return
            self._started = False
            threads, self._threads = self._threads, []
        for _ in threads:
            self._queue.put((_STOP, ()))
        if wait:
            for thread in threads:
                thread.join()
        logger.info("Upload workers stopped")

    def _run(self) -> None:
        while True:
            fn, args = self._queue.get()
            try:
                if fn is _STOP:
                    return
                fn(*args)
            except Exception:
                logger.exception(f"Unhandled error in {threading.current_thread().name}")
            finally:
                # Do not pin the finished job's arguments until the next get()
                fn = args = None
                self._queue.task_done()
