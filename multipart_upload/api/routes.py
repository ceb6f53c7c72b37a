"""
FastAPI endpoints for multipart uploads

Two paths:
- Client-side: init -> presigned-urls -> (client PUTs parts) -> complete | abort
- Server-side: POST /async with the whole file, then poll and resume by job_id
"""
import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse

from ..core.errors import UploadError
from ..schemas import (
    AbortUploadRequest,
    AsyncUploadStartResponse,
    CompleteUploadRequest,
    CompleteUploadResponse,
    InitUploadRequest,
    InitUploadResponse,
    PresignedPartUrl,
    PresignedUrlRequest,
    UploadPartInfo,
    UploadTaskView,
)
from ..services import MultipartUploadService, UploadOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/uploads", tags=["uploads"])

ERROR_STATUS = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "configuration_error": status.HTTP_400_BAD_REQUEST,
    "part_validation_error": status.HTTP_400_BAD_REQUEST,
    "already_completed": status.HTTP_409_CONFLICT,
    "store_error": status.HTTP_502_BAD_GATEWAY,
    "resume_not_allowed": status.HTTP_409_CONFLICT,
    "not_found": status.HTTP_404_NOT_FOUND,
    "queue_full": status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def upload_error_handler(request: Request, exc: UploadError) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    logger.warning(f"{request.method} {request.url.path} -> {status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(UploadError, upload_error_handler)


def get_upload_service(request: Request) -> MultipartUploadService:
    return request.app.state.upload_service


def get_orchestrator(request: Request) -> UploadOrchestrator:
    return request.app.state.orchestrator


UploadService = Annotated[MultipartUploadService, Depends(get_upload_service)]
Orchestrator = Annotated[UploadOrchestrator, Depends(get_orchestrator)]


# =============================================================================
# Client-side multipart upload
# =============================================================================

@router.post("/init", response_model=InitUploadResponse)
def initialize_upload(request: InitUploadRequest, uploads: UploadService):
    """Open a multipart session and return the part plan"""
    logger.info(f"📤 Init upload: {request.file_name} ({request.size_bytes} bytes)")
    return uploads.initialize_session(
        request.file_name,
        request.size_bytes,
        request.content_type,
        request.chunk_size,
    )


@router.post("/presigned-urls", response_model=List[PresignedPartUrl])
def get_presigned_urls(request: PresignedUrlRequest, uploads: UploadService):
    return uploads.get_part_upload_urls(
        request.session_id,
        request.object_key,
        request.start_part,
        request.end_part,
    )


@router.get("/{session_id}/parts", response_model=List[UploadPartInfo])
def get_uploaded_parts(
    session_id: str,
    object_key: Annotated[str, Query(description="Object key returned by /init")],
    uploads: UploadService,
):
    """Parts the store already holds, for client-side resume"""
    return uploads.get_uploaded_parts(session_id, object_key)


@router.post("/complete", response_model=CompleteUploadResponse)
def complete_upload(request: CompleteUploadRequest, uploads: UploadService):
    logger.info(f"✅ Complete upload: {request.object_key} ({len(request.parts)} parts)")
    return uploads.complete_upload(request.session_id, request.object_key, request.parts)


@router.post("/abort")
def abort_upload(request: AbortUploadRequest, orchestrator: Orchestrator):
    """Abort a session. Unknown or already-gone sessions are a no-op."""
    aborted = orchestrator.abort_upload(request.session_id, request.object_key)
    return {
        "session_id": request.session_id,
        "object_key": request.object_key,
        "aborted": aborted,
        "message": "Upload aborted" if aborted else "No active upload found, nothing to abort",
    }


# =============================================================================
# Server-side (async) upload
# =============================================================================

@router.post("/async", response_model=AsyncUploadStartResponse, status_code=status.HTTP_202_ACCEPTED)
def start_async_upload(
    file: Annotated[UploadFile, File(description="File to upload")],
    orchestrator: Orchestrator,
    chunk_size: Annotated[Optional[int], Form(description="Part size in bytes")] = None,
):
    """
    Hand over the whole file; the transfer runs on a worker.

    Returns the job_id immediately. Poll GET /async/{job_id} for progress.
    """
    data = file.file.read()
    logger.info(f"📤 Async upload: {file.filename} ({len(data)} bytes)")
    job_id = orchestrator.submit(
        data,
        file.filename or "",
        file.content_type or "",
        chunk_size,
    )
    return AsyncUploadStartResponse(job_id=job_id)


@router.get("/async", response_model=List[UploadTaskView])
def list_resumable_uploads(orchestrator: Orchestrator):
    """Paused or failed uploads that can still be resumed"""
    return orchestrator.list_resumable()


@router.get("/async/{job_id}", response_model=UploadTaskView)
def get_async_upload_progress(job_id: str, orchestrator: Orchestrator):
    return orchestrator.get_task_progress(job_id)


@router.post("/async/{job_id}/resume", response_model=UploadTaskView, status_code=status.HTTP_202_ACCEPTED)
def resume_async_upload(job_id: str, orchestrator: Orchestrator):
    logger.info(f"🔄 Resume upload: {job_id}")
    return orchestrator.resume(job_id)
