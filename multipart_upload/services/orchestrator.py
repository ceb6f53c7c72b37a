"""
Server-side uploads with crash-recoverable resume.

The caller hands over the whole file; a worker stages it to disk, opens a
store session, uploads parts one at a time and finalizes. Everything needed
to continue after a restart lives on the UploadTask row:

    SUBMITTED --worker--> UPLOADING --finalized--> COMPLETED
    UPLOADING --error--> FAILED
    UPLOADING --restart (applied at boot)--> PAUSED
    PAUSED | FAILED --resume--> UPLOADING

Progress bands:
    5%  staging the file       10% opening the session
    15-90% parts               90% completing
    95% saving metadata        100% done
"""
import logging
import os
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from ..core.config import Settings, settings as default_settings
from ..core.errors import (
    NotFoundError,
    QueueFullError,
    ResumeNotAllowedError,
    UploadError,
)
from ..models import UploadTask, UploadStatus, FAILED_PROGRESS
from ..schemas import PartETag, UploadTaskView
from .multipart import MultipartUploadService
from .planner import ChunkPlan, plan
from .progress import ProgressCache
from .repository import SqlTaskStore
from .storage import ObjectStoreGateway
from .worker_pool import UploadWorkerPool

logger = logging.getLogger(__name__)

PROGRESS_STAGING = 5.0
PROGRESS_SESSION = 10.0
PROGRESS_PARTS_START = 15.0
PROGRESS_PARTS_END = 90.0
PROGRESS_PERSIST = 95.0
PROGRESS_DONE = 100.0


def part_progress(uploaded_parts: int, total_parts: int) -> float:
    """Map part progress linearly into the 15-90% band."""
    if total_parts <= 0:
        return PROGRESS_PARTS_END
    span = PROGRESS_PARTS_END - PROGRESS_PARTS_START
    return PROGRESS_PARTS_START + span * uploaded_parts / total_parts


def describe_error(error: Exception) -> str:
    """User-facing text for a failure, without paths or store internals."""
    if isinstance(error, UploadError):
        return error.message
    if isinstance(error, OSError):
        return f"Staged file I/O error: {error.strerror or type(error).__name__}"
    return str(error) or type(error).__name__


class UploadOrchestrator:
    """
    Owns server-side uploads end to end.

    At most one worker touches a job at a time: submit and resume claim the
    job_id before scheduling and the worker releases it when done.
    """

    def __init__(
        self,
        uploads: MultipartUploadService,
        store: ObjectStoreGateway,
        task_store: SqlTaskStore,
        progress_cache: Optional[ProgressCache] = None,
        pool: Optional[UploadWorkerPool] = None,
        config: Optional[Settings] = None,
    ):
        self.uploads = uploads
        self.store = store
        self.task_store = task_store
        self.config = config or default_settings
        self.progress = progress_cache or ProgressCache(
            task_store,
            retention_seconds=self.config.PROGRESS_RETENTION_MINUTES * 60,
        )
        self.pool = pool or UploadWorkerPool(
            worker_count=self.config.UPLOAD_WORKER_COUNT,
            queue_capacity=self.config.UPLOAD_QUEUE_CAPACITY,
        )
        self.temp_dir = Path(self.config.UPLOAD_TEMP_DIRECTORY)
        self._active: set = set()
        self._active_lock = threading.Lock()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Reconcile interrupted tasks, then start accepting work."""
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        self.recover_interrupted_tasks()
        self.pool.start()

    def shutdown(self, wait: bool = True) -> None:
        self.pool.shutdown(wait=wait)

    def recover_interrupted_tasks(self) -> int:
        """
        Demote tasks left mid-flight by an unclean shutdown.

        UPLOADING tasks have no live worker after a restart, so they become
        PAUSED and wait for an explicit resume. SUBMITTED tasks never staged
        their bytes and cannot be resumed, so they become FAILED. Staged
        files and store-side sessions are left untouched. A failure on one
        task does not stop the others.

        Returns:
            Number of tasks moved to PAUSED
        """
        paused = 0
        for task in self.task_store.find_by_status(UploadStatus.UPLOADING):
            if self._is_active(task.job_id):
                continue
            try:
                self._update(
                    task,
                    status=UploadStatus.PAUSED.value,
                    message="Upload paused after restart, waiting for resume",
                )
                paused += 1
                logger.info(f"Loaded paused upload task: {task.job_id} ({task.uploaded_parts}/{task.total_parts} parts)")
            except Exception:
                logger.exception(f"Failed to recover upload task: {task.job_id}")

        for task in self.task_store.find_by_status(UploadStatus.SUBMITTED):
            if self._is_active(task.job_id):
                continue
            try:
                self._update(
                    task,
                    status=UploadStatus.FAILED.value,
                    progress=FAILED_PROGRESS,
                    message="Upload interrupted before the file was staged, please submit it again",
                    ended_at=datetime.utcnow(),
                )
                logger.info(f"Marked unstaged upload task as failed: {task.job_id}")
            except Exception:
                logger.exception(f"Failed to recover upload task: {task.job_id}")

        logger.info(f"Recovered {paused} interrupted upload tasks")
        return paused

    # =========================================================================
    # Submit / progress / resume
    # =========================================================================

    def submit(
        self,
        data: bytes,
        file_name: str,
        content_type: str,
        chunk_size: Optional[int] = None,
    ) -> str:
        """
        Validate, persist a SUBMITTED task and schedule the transfer.

        Returns the job_id without waiting for the transfer.

        Raises:
            ValidationError: Bad metadata or chunk size
            QueueFullError: The worker pool cannot take more work
        """
        chunk_plan = self.uploads.plan_upload(file_name, len(data), content_type, chunk_size)

        job_id = str(uuid.uuid4())
        task = self.task_store.create(UploadTask(
            job_id=job_id,
            status=UploadStatus.SUBMITTED.value,
            progress=0.0,
            message="Upload submitted, waiting to start...",
            uploaded_parts=0,
            total_parts=chunk_plan.part_count,
            file_name=file_name,
            file_size=len(data),
            content_type=content_type,
            chunk_size=chunk_plan.chunk_size,
            started_at=datetime.utcnow(),
        ))
        self.progress.put(task)

        # The worker pops the bytes out of the holder, so the queued job
        # does not keep the whole file alive during the transfer.
        payload = [data]
        self._claim(job_id)
        try:
            self.pool.submit(self._run_upload, job_id, payload)
        except QueueFullError as e:
            self._release(job_id)
            self._update(
                task,
                status=UploadStatus.FAILED.value,
                progress=FAILED_PROGRESS,
                message=f"Upload rejected: {e.message}",
                ended_at=datetime.utcnow(),
            )
            raise

        logger.info(f"Async upload job submitted: {job_id}, file: {file_name}, total parts: {chunk_plan.part_count}")
        return job_id

    def get_task_progress(self, job_id: str) -> UploadTaskView:
        """
        Raises:
            NotFoundError: Unknown job_id
        """
        view = self.progress.get(job_id)
        if view is None:
            raise NotFoundError(f"Upload task not found: {job_id}")
        return view

    def list_resumable(self) -> List[UploadTaskView]:
        """PAUSED and FAILED tasks whose staged file is still on disk."""
        views = []
        for status in (UploadStatus.PAUSED, UploadStatus.FAILED):
            for task in self.task_store.find_by_status(status):
                if task.staged_file_path and Path(task.staged_file_path).exists():
                    views.append(UploadTaskView.model_validate(task))
        return views

    def resume(self, job_id: str) -> UploadTaskView:
        """
        Continue a PAUSED or FAILED task from the parts the store already holds.

        Raises:
            NotFoundError: Unknown job_id
            ResumeNotAllowedError: Wrong status, staged file gone, no session
                recorded, or a worker already owns the job
            QueueFullError: The worker pool cannot take more work
        """
        logger.info(f"Resuming async upload job: {job_id}")
        if not self._claim(job_id):
            raise ResumeNotAllowedError(f"Upload task is already being processed: {job_id}")

        try:
            task = self.task_store.find_by_job_id(job_id)
            if task is None:
                raise NotFoundError(f"Upload task not found: {job_id}")
            self._check_resumable(task)

            previous = {
                "status": task.status,
                "progress": task.progress,
                "message": task.message,
                "ended_at": task.ended_at,
            }
            view = self._update(
                task,
                status=UploadStatus.UPLOADING.value,
                progress=PROGRESS_PARTS_START,
                message="Resuming upload...",
                ended_at=None,
            )
            try:
                self.pool.submit(self._run_resume, job_id)
            except QueueFullError:
                self._update(task, **previous)
                raise
        except Exception:
            self._release(job_id)
            raise

        logger.info(f"Async upload job resumed: {job_id}")
        return view

    def abort_upload(self, session_id: str, object_key: str) -> bool:
        """
        Abort a store session and retire the server-side task linked to it.

        A linked task that has not completed becomes FAILED and loses its
        staged file, so it is no longer listed or accepted for resume.

        Returns:
            True if the store aborted a live session, False if nothing was there

        Raises:
            StoreError: The store rejected the abort; the task is left as is
        """
        aborted = self.uploads.abort_upload(session_id, object_key)

        task = self.task_store.find_by_session(session_id, object_key)
        if task is None or task.upload_status == UploadStatus.COMPLETED:
            return aborted

        staged_path = task.staged_file_path
        self._update(
            task,
            status=UploadStatus.FAILED.value,
            progress=FAILED_PROGRESS,
            message="Upload aborted",
            staged_file_path=None,
            ended_at=datetime.utcnow(),
        )
        self._remove_staged(task.job_id, staged_path)
        logger.info(f"Async upload job aborted: {task.job_id}")
        return aborted

    def _check_resumable(self, task: UploadTask) -> None:
        if not task.upload_status.resumable:
            raise ResumeNotAllowedError(f"Upload task cannot be resumed. Current status: {task.status}")
        if not task.staged_file_path or not Path(task.staged_file_path).exists():
            raise ResumeNotAllowedError(f"Staged file not found for upload task: {task.job_id}")
        if not task.session_id or not task.object_key:
            raise ResumeNotAllowedError(f"No upload session recorded for upload task: {task.job_id}")

    # =========================================================================
    # Worker bodies
    # =========================================================================

    def _run_upload(self, job_id: str, payload: List[bytes]) -> None:
        try:
            task = self.task_store.find_by_job_id(job_id)
            if task is None:
                logger.error(f"Upload task disappeared before start: {job_id}")
                return
            self._transfer_new(task, payload.pop())
        finally:
            self._release(job_id)

    def _transfer_new(self, task: UploadTask, data: bytes) -> None:
        phase = "staging"
        try:
            self._update(
                task,
                status=UploadStatus.UPLOADING.value,
                progress=PROGRESS_STAGING,
                message="Saving file to temporary directory...",
            )
            staged = self._stage(task.job_id, task.file_name, data)
            self._update(task, staged_file_path=str(staged))
            del data

            phase = "session"
            self._update(task, progress=PROGRESS_SESSION, message="Initializing upload session...")
            session = self.uploads.initialize_session(
                task.file_name, task.file_size, task.content_type, task.chunk_size
            )
            self._update(task, session_id=session.session_id, object_key=session.object_key)

            phase = "transfer"
            self._update(task, progress=PROGRESS_PARTS_START, message="Uploading parts...")
            chunk_plan = plan(task.file_size, task.chunk_size, self.config.UPLOAD_DEFAULT_CHUNK_SIZE)
            parts = self._upload_parts(task, chunk_plan, committed={})

            phase = "finalize"
            self._finalize(task, parts)
        except Exception as e:
            # Failed completions are aborted by the completion step itself;
            # a transfer failure keeps the session so resume can continue.
            self._fail(task, e, abort_session=(phase == "session"))

    def _run_resume(self, job_id: str) -> None:
        try:
            task = self.task_store.find_by_job_id(job_id)
            if task is None:
                logger.error(f"Upload task disappeared before resume: {job_id}")
                return
            self._transfer_remaining(task)
        finally:
            self._release(job_id)

    def _transfer_remaining(self, task: UploadTask) -> None:
        try:
            self._update(task, message="Checking uploaded parts...")
            chunk_plan = plan(task.file_size, task.chunk_size, self.config.UPLOAD_DEFAULT_CHUNK_SIZE)
            committed = self._reconcile_committed_parts(task, chunk_plan)

            self._update(
                task,
                uploaded_parts=len(committed),
                progress=part_progress(len(committed), chunk_plan.part_count),
                message=f"Resuming upload with {len(committed)}/{chunk_plan.part_count} parts already stored",
            )
            parts = self._upload_parts(task, chunk_plan, committed)
            self._finalize(task, parts)
        except Exception as e:
            self._fail(task, e, abort_session=False)

    def _reconcile_committed_parts(self, task: UploadTask, chunk_plan: ChunkPlan) -> Dict[int, str]:
        """
        Ask the store which parts actually landed.

        The store, not local state, is authoritative. A listed part whose
        size does not match the plan is treated as missing and uploaded
        again.
        """
        committed: Dict[int, str] = {}
        for part in self.store.list_committed_parts(task.session_id, task.object_key):
            if not 1 <= part.part_number <= chunk_plan.part_count:
                logger.warning(f"[{task.job_id}] Ignoring unexpected part {part.part_number} listed by the store")
                continue
            _, expected_size = chunk_plan.part_range(part.part_number)
            if part.size_bytes != expected_size:
                logger.warning(
                    f"[{task.job_id}] Part {part.part_number} has {part.size_bytes} bytes, "
                    f"expected {expected_size}; uploading it again"
                )
                continue
            committed[part.part_number] = part.etag

        logger.info(f"Found {len(committed)} already uploaded parts for job: {task.job_id}")
        return committed

    def _upload_parts(self, task: UploadTask, chunk_plan: ChunkPlan, committed: Dict[int, str]) -> List[PartETag]:
        """
        Upload every part not already committed, one at a time.

        Returns the full part list (committed + new), sorted by part number.
        """
        parts = [PartETag(part_number=n, etag=etag) for n, etag in committed.items()]
        uploaded = len(committed)
        total = chunk_plan.part_count
        logger.info(f"Starting to upload {total - uploaded} of {total} parts for job: {task.job_id}")

        with open(task.staged_file_path, "rb") as staged:
            for part_number, offset, length in chunk_plan.ranges():
                if part_number in committed:
                    continue

                staged.seek(offset)
                chunk = staged.read(length)
                if len(chunk) != length:
                    raise OSError(0, f"staged file is shorter than expected at part {part_number}")

                etag = self.store.upload_part(task.session_id, task.object_key, part_number, chunk)
                parts.append(PartETag(part_number=part_number, etag=etag))
                uploaded += 1

                self._update(
                    task,
                    uploaded_parts=uploaded,
                    progress=part_progress(uploaded, total),
                    message=f"Uploading part {part_number}/{total}...",
                )
                logger.debug(f"Uploaded part {part_number}/{total} for job: {task.job_id}, ETag: {etag}")

        parts.sort(key=lambda p: p.part_number)
        logger.info(f"All {len(parts)} parts uploaded successfully for job: {task.job_id}")
        return parts

    def _finalize(self, task: UploadTask, parts: List[PartETag]) -> None:
        self._update(task, progress=PROGRESS_PARTS_END, message="Completing upload...", uploaded_parts=len(parts))

        result = self.uploads.complete_upload(
            task.session_id,
            task.object_key,
            parts,
            file_name=task.file_name,
            on_completed=lambda: self._update(
                task, progress=PROGRESS_PERSIST, message="Saving metadata to database..."
            ),
        )

        staged_path = task.staged_file_path
        self._update(
            task,
            status=UploadStatus.COMPLETED.value,
            progress=PROGRESS_DONE,
            message="Upload completed successfully",
            finalized_object_id=result.id,
            download_url=result.download_url,
            staged_file_path=None,
            ended_at=datetime.utcnow(),
        )
        self._remove_staged(task.job_id, staged_path)
        logger.info(f"Async upload job completed successfully: {task.job_id}")

    def _fail(self, task: UploadTask, error: Exception, abort_session: bool) -> None:
        """Mark the attempt FAILED. The staged file is kept for resume."""
        logger.error(f"Async upload job failed: {task.job_id}", exc_info=error)

        if abort_session and task.session_id and task.object_key:
            try:
                self.uploads.abort_upload(task.session_id, task.object_key)
                logger.info(f"Cleaned up failed async upload: {task.job_id}")
            except Exception as cleanup_error:
                logger.error(f"Failed to cleanup async upload: {task.job_id}: {cleanup_error}")

        try:
            self._update(
                task,
                status=UploadStatus.FAILED.value,
                progress=FAILED_PROGRESS,
                message=f"Upload failed: {describe_error(error)}",
                ended_at=datetime.utcnow(),
            )
        except Exception:
            logger.exception(f"Failed to record failure for upload task: {task.job_id}")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _update(self, task: UploadTask, **changes) -> UploadTaskView:
        """Apply changes to the task, persist them, refresh the cache."""
        for field, value in changes.items():
            setattr(task, field, value)
        self.task_store.save(task)
        return self.progress.put(task)

    def _stage(self, job_id: str, file_name: str, data: bytes) -> Path:
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        staged = self.temp_dir / f"{job_id}-{Path(file_name).name}"
        with open(staged, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        logger.info(f"File staged for job {job_id} ({len(data)} bytes)")
        return staged

    def _remove_staged(self, job_id: str, staged_path: Optional[str]) -> None:
        if not staged_path:
            return
        try:
            Path(staged_path).unlink(missing_ok=True)
            logger.info(f"Staged file deleted for job {job_id}")
        except OSError as e:
            logger.warning(f"Failed to delete staged file for job {job_id}: {e}")

    def _claim(self, job_id: str) -> bool:
        with self._active_lock:
            if job_id in self._active:
                return False
            self._active.add(job_id)
            return True

    def _release(self, job_id: str) -> None:
        with self._active_lock:
            self._active.discard(job_id)

    def _is_active(self, job_id: str) -> bool:
        with self._active_lock:
            return job_id in self._active
