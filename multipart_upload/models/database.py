"""
Database models for server-side upload tasks and finalized objects

UploadTask is the single source of truth for resumability: it records the
store-side session, the staged file on disk, and progress counters.
"""
import enum
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import String, Integer, BigInteger, Float, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class UploadStatus(str, enum.Enum):
    SUBMITTED = "SUBMITTED"
    UPLOADING = "UPLOADING"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def resumable(self) -> bool:
        return self in (UploadStatus.PAUSED, UploadStatus.FAILED)


FAILED_PROGRESS = -1.0


class UploadTask(Base):
    """
    Persisted state of one server-side upload.

    Lifecycle:
      SUBMITTED -> UPLOADING -> COMPLETED
      UPLOADING -> FAILED | PAUSED (PAUSED only via boot-time recovery)
      PAUSED | FAILED -> UPLOADING (resume)
    """
    __tablename__ = "upload_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        unique=True,
        default=lambda: str(uuid4())
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=UploadStatus.SUBMITTED.value, index=True)
    progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    message: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    uploaded_parts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_parts: Mapped[int] = mapped_column(Integer, nullable=False)

    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    content_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    chunk_size: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Store-side session, recorded as soon as it is opened
    session_id: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    object_key: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # On-disk copy of the source bytes, required for resume
    staged_file_path: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    finalized_object_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    download_url: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )

    __table_args__ = (
        Index('idx_status_updated', 'status', 'updated_at'),
    )

    @property
    def upload_status(self) -> UploadStatus:
        return UploadStatus(self.status)

    def __repr__(self):
        return f"<UploadTask job_id={self.job_id} status={self.status} parts={self.uploaded_parts}/{self.total_parts}>"


class FinalizedObject(Base):
    """
    Metadata of a successfully completed upload.

    object_key is unique: a second finalize for the same key must fail.
    """
    __tablename__ = "finalized_objects"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    object_key: Mapped[str] = mapped_column(String(1000), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=UploadStatus.COMPLETED.value)
    integrity_tag: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<FinalizedObject id={self.id} object_key={self.object_key} size={self.size_bytes}>"
