"""
Pydantic schemas for upload request/response validation
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class InitUploadRequest(BaseModel):
    """Client-declared metadata for a direct (client-side) multipart upload"""
    file_name: str
    size_bytes: int = Field(..., ge=0)
    content_type: str
    chunk_size: Optional[int] = Field(None, description="Part size in bytes; server default when omitted")


class InitUploadResponse(BaseModel):
    session_id: str
    object_key: str
    chunk_size: int
    min_part: int = 1
    max_part: int


class PresignedUrlRequest(BaseModel):
    session_id: str
    object_key: str
    start_part: int
    end_part: int


class PresignedPartUrl(BaseModel):
    part_number: int
    url: str
    expires_at: datetime


class PartETag(BaseModel):
    """One entry of a client-submitted completion part list"""
    part_number: int
    etag: str


class UploadPartInfo(BaseModel):
    """A part the store confirms as committed"""
    part_number: int
    etag: str
    size_bytes: int


class CompleteUploadRequest(BaseModel):
    session_id: str
    object_key: str
    parts: List[PartETag]


class AbortUploadRequest(BaseModel):
    session_id: str
    object_key: str


class CompleteUploadResponse(BaseModel):
    """Finalized object metadata plus a time-limited download URL"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    file_name: str
    size_bytes: int
    object_key: str
    status: str
    integrity_tag: Optional[str] = None
    download_url: Optional[str] = None
    created_at: datetime


class AsyncUploadStartResponse(BaseModel):
    job_id: str
    message: str = "Upload job submitted"


class UploadTaskView(BaseModel):
    """Read model of an UploadTask, served from the progress cache"""
    model_config = ConfigDict(from_attributes=True)

    job_id: str
    status: str
    progress: float
    message: Optional[str] = None
    uploaded_parts: int
    total_parts: int
    file_name: str
    file_size: int
    object_key: Optional[str] = None
    finalized_object_id: Optional[str] = None
    download_url: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
