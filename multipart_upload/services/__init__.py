"""Services module exports"""
from .planner import ChunkPlan, plan, MIN_CHUNK_SIZE, MAX_CHUNK_SIZE
from .validation import validate_file_metadata, validate_parts, require_session
from .storage import ObjectStoreGateway, S3ObjectStoreGateway, ObjectStat, object_key_for
from .repository import SqlTaskStore, FinalizedObjectRepository
from .progress import ProgressCache
from .worker_pool import UploadWorkerPool
from .multipart import MultipartUploadService, MAX_PARTS_PER_REQUEST
from .orchestrator import UploadOrchestrator, part_progress

__all__ = [
    "ChunkPlan",
    "plan",
    "MIN_CHUNK_SIZE",
    "MAX_CHUNK_SIZE",
    "validate_file_metadata",
    "validate_parts",
    "require_session",
    "ObjectStoreGateway",
    "S3ObjectStoreGateway",
    "ObjectStat",
    "object_key_for",
    "SqlTaskStore",
    "FinalizedObjectRepository",
    "ProgressCache",
    "UploadWorkerPool",
    "MultipartUploadService",
    "MAX_PARTS_PER_REQUEST",
    "UploadOrchestrator",
    "part_progress",
]
