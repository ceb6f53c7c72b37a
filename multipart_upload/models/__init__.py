"""Models module exports"""
from .database import UploadTask, FinalizedObject, UploadStatus, FAILED_PROGRESS

__all__ = ["UploadTask", "FinalizedObject", "UploadStatus", "FAILED_PROGRESS"]
