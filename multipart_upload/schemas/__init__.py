"""Schemas module exports"""
from .upload import (
    InitUploadRequest,
    InitUploadResponse,
    PresignedUrlRequest,
    PresignedPartUrl,
    PartETag,
    UploadPartInfo,
    CompleteUploadRequest,
    AbortUploadRequest,
    CompleteUploadResponse,
    AsyncUploadStartResponse,
    UploadTaskView,
)

__all__ = [
    "InitUploadRequest",
    "InitUploadResponse",
    "PresignedUrlRequest",
    "PresignedPartUrl",
    "PartETag",
    "UploadPartInfo",
    "CompleteUploadRequest",
    "AbortUploadRequest",
    "CompleteUploadResponse",
    "AsyncUploadStartResponse",
    "UploadTaskView",
]
