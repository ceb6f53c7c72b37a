"""
Persistence for upload tasks and finalized objects.
"""
import logging
from typing import List, Optional

from sqlalchemy import select, exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..core.database import SessionLocal, get_db
from ..core.errors import AlreadyCompletedError
from ..models import UploadTask, FinalizedObject, UploadStatus

logger = logging.getLogger(__name__)


class SqlTaskStore:
    """
    TaskStore over SQLAlchemy.

    Returned rows are detached copies; callers mutate them and hand them back
    to save().
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    def create(self, task: UploadTask) -> UploadTask:
        with get_db(self.session_factory) as db:
            db.add(task)
            db.flush()
            db.refresh(task)
        return task

    def find_by_job_id(self, job_id: str) -> Optional[UploadTask]:
        with get_db(self.session_factory) as db:
            return db.scalars(select(UploadTask).where(UploadTask.job_id == job_id)).first()

    def find_by_session(self, session_id: str, object_key: str) -> Optional[UploadTask]:
        with get_db(self.session_factory) as db:
            return db.scalars(
                select(UploadTask)
                .where(UploadTask.session_id == session_id, UploadTask.object_key == object_key)
            ).first()

    def find_by_status(self, status: UploadStatus) -> List[UploadTask]:
        with get_db(self.session_factory) as db:
            return list(db.scalars(
                select(UploadTask)
                .where(UploadTask.status == status.value)
                .order_by(UploadTask.id)
            ))

    def save(self, task: UploadTask) -> UploadTask:
        with get_db(self.session_factory) as db:
            merged = db.merge(task)
            db.flush()
            db.refresh(merged)
        return merged


class FinalizedObjectRepository:
    """Finalized-object rows; object_key is unique."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    def exists_by_object_key(self, object_key: str) -> bool:
        with get_db(self.session_factory) as db:
            return bool(db.scalar(select(exists().where(FinalizedObject.object_key == object_key))))

    def find_by_object_key(self, object_key: str) -> Optional[FinalizedObject]:
        with get_db(self.session_factory) as db:
            return db.scalars(select(FinalizedObject).where(FinalizedObject.object_key == object_key)).first()

    def save(self, record: FinalizedObject) -> FinalizedObject:
        """
        Insert a finalized object.

        Raises:
            AlreadyCompletedError: If a row for the object key already exists
        """
        try:
            with get_db(self.session_factory) as db:
                db.add(record)
                db.flush()
                db.refresh(record)
        except IntegrityError as e:
            logger.warning(f"Finalized object already exists for objectKey: {record.object_key}")
            raise AlreadyCompletedError(record.object_key) from e
        logger.info(f"Finalized object saved with id: {record.id}")
        return record
