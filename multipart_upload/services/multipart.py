"""
Client-driven multipart uploads.

Flow:
1. initialize_session: validate metadata, open a store session, return the chunk plan
2. get_part_upload_urls: presigned URLs the client PUTs part bytes to
3. get_uploaded_parts: what the store holds so far (client-side resume)
4. complete_upload: validate the part list, finalize, persist metadata
5. abort_upload: release store-side storage
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from ..core.config import Settings, settings as default_settings
from ..core.errors import (
    AlreadyCompletedError,
    StoreError,
    UploadError,
    ValidationError,
)
from ..models import FinalizedObject, UploadStatus
from ..schemas import (
    CompleteUploadResponse,
    InitUploadResponse,
    PartETag,
    PresignedPartUrl,
    UploadPartInfo,
)
from .planner import ChunkPlan, plan
from .repository import FinalizedObjectRepository
from .storage import ObjectStoreGateway, object_key_for
from .validation import require_session, validate_file_metadata, validate_parts

logger = logging.getLogger(__name__)

MAX_PARTS_PER_REQUEST = 100


class MultipartUploadService:

    def __init__(
        self,
        store: ObjectStoreGateway,
        finalized_objects: FinalizedObjectRepository,
        config: Optional[Settings] = None,
    ):
        self.store = store
        self.finalized_objects = finalized_objects
        self.config = config or default_settings

    # =========================================================================
    # Session initialization
    # =========================================================================

    def plan_upload(
        self,
        file_name: str,
        size_bytes: int,
        content_type: str,
        chunk_size: Optional[int] = None,
    ) -> ChunkPlan:
        """Validate file metadata and compute its chunk plan. No remote calls."""
        validate_file_metadata(file_name, size_bytes, content_type, self.config)
        return plan(size_bytes, chunk_size, self.config.UPLOAD_DEFAULT_CHUNK_SIZE)

    def initialize_session(
        self,
        file_name: str,
        size_bytes: int,
        content_type: str,
        chunk_size: Optional[int] = None,
    ) -> InitUploadResponse:
        """
        Open a multipart session for a file.

        Raises:
            ValidationError: Bad name, content type, size or chunk size
            StoreError: If the store refuses to open the session
        """
        logger.info(f"Initializing upload for file: {file_name}, size: {size_bytes} bytes")
        chunk_plan = self.plan_upload(file_name, size_bytes, content_type, chunk_size)

        object_key = object_key_for(file_name)
        session_id = self.store.create_session(object_key, content_type)

        return InitUploadResponse(
            session_id=session_id,
            object_key=object_key,
            chunk_size=chunk_plan.chunk_size,
            min_part=1,
            max_part=chunk_plan.part_count,
        )

    # =========================================================================
    # Presigned part URLs
    # =========================================================================

    def get_part_upload_urls(
        self,
        session_id: str,
        object_key: str,
        start_part: int,
        end_part: int,
    ) -> List[PresignedPartUrl]:
        """
        One time-limited upload URL per part in [start_part, end_part].

        Raises:
            ValidationError: Bad range or more than 100 parts requested
            StoreError: If signing fails for any part (no partial result)
        """
        logger.info(f"Generating pre-signed URLs for uploadId: {session_id}, parts: {start_part} to {end_part}")
        require_session(session_id, object_key)

        if start_part <= 0:
            raise ValidationError(f"Start part number must be positive, got: {start_part}")
        if end_part < start_part:
            raise ValidationError(
                f"End part number ({end_part}) must be greater than or equal to start part number ({start_part})"
            )
        requested = end_part - start_part + 1
        if requested > MAX_PARTS_PER_REQUEST:
            raise ValidationError(
                f"Cannot request more than {MAX_PARTS_PER_REQUEST} parts in a single request. Requested: {requested}"
            )

        ttl = self.config.presigned_url_ttl_seconds
        expires_at = datetime.utcnow() + timedelta(seconds=ttl)

        urls = []
        for part_number in range(start_part, end_part + 1):
            try:
                url = self.store.presign_part_upload(session_id, object_key, part_number, ttl)
            except StoreError:
                raise
            except Exception as e:
                logger.error(f"Failed to generate presigned URL for part {part_number} of uploadId: {session_id}")
                raise StoreError(f"Failed to generate presigned URL for part {part_number}") from e
            urls.append(PresignedPartUrl(part_number=part_number, url=url, expires_at=expires_at))

        logger.info(f"Generated {len(urls)} pre-signed URLs expiring at {expires_at.isoformat()}")
        return urls

    # =========================================================================
    # Status, completion, abort
    # =========================================================================

    def get_uploaded_parts(self, session_id: str, object_key: str) -> List[UploadPartInfo]:
        """
        Raises:
            NotFoundError: If the store does not know the session
        """
        require_session(session_id, object_key)
        parts = self.store.list_committed_parts(session_id, object_key)
        logger.info(f"Upload status retrieved: {len(parts)} parts uploaded for uploadId: {session_id}")
        return parts

    def complete_upload(
        self,
        session_id: str,
        object_key: str,
        parts: Sequence[PartETag],
        file_name: Optional[str] = None,
        on_completed: Optional[Callable[[], None]] = None,
    ) -> CompleteUploadResponse:
        """
        Finalize a multipart upload.

        Validation and the idempotency guard run before any remote call. Once
        the complete call has been attempted, any failure triggers a
        best-effort abort before the error is raised.

        Args:
            file_name: Name to record; defaults to the last segment of object_key
            on_completed: Called after the store assembled the object

        Raises:
            PartValidationError: Gaps, duplicates or missing ETags
            AlreadyCompletedError: object_key was already finalized
            StoreError: The store or metadata persistence failed
        """
        logger.info(f"Completing upload for uploadId: {session_id}, objectKey: {object_key}")
        require_session(session_id, object_key)
        ordered = validate_parts(parts)

        if self.finalized_objects.exists_by_object_key(object_key):
            logger.warning(f"Upload already completed for objectKey: {object_key}")
            raise AlreadyCompletedError(object_key)

        try:
            etag = self.store.complete(session_id, object_key, ordered)
            if on_completed is not None:
                on_completed()

            stat = self.store.stat(object_key)
            record = self.finalized_objects.save(FinalizedObject(
                file_name=file_name or object_key.rsplit("/", 1)[-1],
                size_bytes=stat.size_bytes,
                object_key=object_key,
                status=UploadStatus.COMPLETED.value,
                integrity_tag=etag or stat.integrity_tag,
            ))
            download_url = self.download_url(object_key)
        except Exception as e:
            logger.error(f"Failed to complete upload for uploadId: {session_id}, objectKey: {object_key}: {e}")
            self._cleanup(session_id, object_key)
            if isinstance(e, UploadError):
                raise
            raise StoreError(f"Failed to complete upload: {e}") from e

        response = CompleteUploadResponse.model_validate(record)
        response.download_url = download_url
        return response

    def abort_upload(self, session_id: str, object_key: str) -> bool:
        """
        Abort a session. A session that is already gone is a no-op.

        Returns:
            True if the store aborted a live session, False if nothing was there
        """
        logger.info(f"Aborting upload for uploadId: {session_id}, objectKey: {object_key}")
        require_session(session_id, object_key)
        return self.store.abort(session_id, object_key)

    def download_url(self, object_key: str) -> str:
        return self.store.presign_download(object_key, self.config.presigned_url_ttl_seconds)

    def _cleanup(self, session_id: str, object_key: str) -> None:
        try:
            self.store.abort(session_id, object_key)
            logger.info(f"Cleaned up failed upload: {session_id}")
        except Exception as cleanup_error:
            logger.error(f"Failed to cleanup upload after failure: {session_id}: {cleanup_error}")
