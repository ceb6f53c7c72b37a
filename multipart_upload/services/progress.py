"""
In-memory progress cache for server-side uploads.

Writers update the cache and the TaskStore for the same event. Readers get
low-latency polling from the cache and fall back to the TaskStore on a miss,
so the cache is never authoritative after a restart (it starts empty).

Views of finished uploads (COMPLETED or FAILED) are kept for a retention
window and then dropped; a later read is served from the TaskStore.
"""
import logging
import threading
import time
from typing import Callable, Dict, Optional

from ..schemas import UploadTaskView
from ..models import UploadTask, UploadStatus

logger = logging.getLogger(__name__)

FINISHED_STATUSES = {UploadStatus.COMPLETED.value, UploadStatus.FAILED.value}


class ProgressCache:

    def __init__(
        self,
        task_store,
        retention_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.task_store = task_store
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._views: Dict[str, UploadTaskView] = {}
        self._expires_at: Dict[str, float] = {}
        self._lock = threading.Lock()

    def put(self, task: UploadTask) -> UploadTaskView:
        view = UploadTaskView.model_validate(task)
        with self._lock:
            self._views[task.job_id] = view
            if view.status in FINISHED_STATUSES:
                self._expires_at[task.job_id] = self._clock() + self.retention_seconds
            else:
                self._expires_at.pop(task.job_id, None)
            self._purge_expired()
        return view

    def get(self, job_id: str) -> Optional[UploadTaskView]:
        with self._lock:
            self._purge_expired()
            view = self._views.get(job_id)
        if view is not None:
            return view

        task = self.task_store.find_by_job_id(job_id)
        if task is None:
            return None
        logger.debug(f"Progress cache miss for {job_id}, loaded from task store")
        return self.put(task)

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._views)

    def _purge_expired(self) -> None:
        # Caller holds self._lock
        now = self._clock()
        expired = [job_id for job_id, deadline in self._expires_at.items() if deadline <= now]
        for job_id in expired:
            del self._expires_at[job_id]
            self._views.pop(job_id, None)
        if expired:
            logger.debug(f"Dropped {len(expired)} finished uploads from progress cache")
