"""
Shared fixtures: a throwaway SQLite database, test settings, and an
in-memory object store that records every call made against it.
"""
import hashlib
import itertools
from typing import Dict, List, Optional, Sequence

import pytest

from multipart_upload.core import Base, Settings, build_engine, build_session_factory
from multipart_upload.core.config import MIB
from multipart_upload.core.errors import NotFoundError, StoreError
from multipart_upload.schemas import PartETag, UploadPartInfo
from multipart_upload.services import (
    FinalizedObjectRepository,
    MultipartUploadService,
    ObjectStat,
    ObjectStoreGateway,
    SqlTaskStore,
    UploadOrchestrator,
    UploadWorkerPool,
)


class InMemoryObjectStore(ObjectStoreGateway):
    """Fake multipart store keeping part sizes and ETags, not the bytes."""

    def __init__(self):
        self.sessions: Dict[str, dict] = {}
        self.objects: Dict[str, ObjectStat] = {}
        self.uploaded: List[int] = []
        self.complete_calls: List[str] = []
        self.abort_calls: List[str] = []
        self.fail_on_part: Optional[int] = None
        self.fail_on_complete = False
        self.fail_on_stat = False
        self._ids = itertools.count(1)

    def create_session(self, object_key: str, content_type: str) -> str:
        session_id = f"upload-{next(self._ids)}"
        self.sessions[session_id] = {"object_key": object_key, "content_type": content_type, "parts": {}}
        return session_id

    def presign_part_upload(self, session_id, object_key, part_number, ttl_seconds) -> str:
        return f"http://store.test/{object_key}?uploadId={session_id}&partNumber={part_number}&expires={ttl_seconds}"

    def upload_part(self, session_id, object_key, part_number, data) -> str:
        session = self._session(session_id)
        if self.fail_on_part == part_number:
            raise StoreError(f"Failed to upload part {part_number}: connection reset")
        etag = f'"{hashlib.md5(data).hexdigest()}"'
        session["parts"][part_number] = (etag, len(data))
        self.uploaded.append(part_number)
        return etag

    def commit_part(self, session_id: str, part_number: int, size_bytes: int) -> str:
        """Record a part as if a client had PUT it to a presigned URL."""
        etag = f'"etag-{part_number}"'
        self._session(session_id)["parts"][part_number] = (etag, size_bytes)
        return etag

    def list_committed_parts(self, session_id, object_key) -> List[UploadPartInfo]:
        session = self._session(session_id)
        return [
            UploadPartInfo(part_number=n, etag=etag, size_bytes=size)
            for n, (etag, size) in sorted(session["parts"].items())
        ]

    def complete(self, session_id, object_key, parts: Sequence[PartETag]) -> str:
        self.complete_calls.append(session_id)
        session = self._session(session_id)
        if self.fail_on_complete:
            raise StoreError("Failed to complete upload: InternalError")
        stored = session["parts"]
        for part in parts:
            if part.part_number not in stored or stored[part.part_number][0] != part.etag:
                raise StoreError(f"Failed to complete upload: InvalidPart {part.part_number}")
        etag = f'"final-{len(parts)}"'
        self.objects[object_key] = ObjectStat(
            size_bytes=sum(stored[p.part_number][1] for p in parts),
            integrity_tag=etag,
        )
        del self.sessions[session_id]
        return etag

    def abort(self, session_id, object_key) -> bool:
        self.abort_calls.append(session_id)
        return self.sessions.pop(session_id, None) is not None

    def stat(self, object_key) -> ObjectStat:
        if self.fail_on_stat:
            raise StoreError("Failed to read object metadata: SlowDown")
        if object_key not in self.objects:
            raise NotFoundError(f"Object not found: {object_key}")
        return self.objects[object_key]

    def presign_download(self, object_key, ttl_seconds) -> str:
        return f"http://store.test/{object_key}?expires={ttl_seconds}"

    def _session(self, session_id: str) -> dict:
        if session_id not in self.sessions:
            raise NotFoundError("Upload not found or has been completed")
        return self.sessions[session_id]


@pytest.fixture
def config(tmp_path):
    cfg = Settings()
    cfg.UPLOAD_TEMP_DIRECTORY = str(tmp_path / "staging")
    cfg.UPLOAD_ALLOWED_CONTENT_TYPES = "video/"
    cfg.UPLOAD_DEFAULT_CHUNK_SIZE = 8 * MIB
    cfg.UPLOAD_MAX_FILE_SIZE = 5 * 1024 * MIB
    cfg.UPLOAD_WORKER_COUNT = 1
    cfg.PRESIGNED_URL_EXPIRATION_MINUTES = 60
    return cfg


@pytest.fixture
def engine(tmp_path):
    db_engine = build_engine(f"sqlite:///{tmp_path / 'uploads.db'}")
    Base.metadata.create_all(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def task_store(session_factory):
    return SqlTaskStore(session_factory)


@pytest.fixture
def finalized_objects(session_factory):
    return FinalizedObjectRepository(session_factory)


@pytest.fixture
def uploads(store, finalized_objects, config):
    return MultipartUploadService(store, finalized_objects, config)


@pytest.fixture
def make_orchestrator(uploads, store, task_store, config):
    """Build (and later shut down) orchestrators sharing one store and database."""
    created = []

    def factory(tasks=None):
        orchestrator = UploadOrchestrator(
            uploads,
            store,
            tasks or task_store,
            pool=UploadWorkerPool(worker_count=1, queue_capacity=10),
            config=config,
        )
        created.append(orchestrator)
        return orchestrator

    yield factory
    for orchestrator in created:
        orchestrator.shutdown(wait=True)


@pytest.fixture
def orchestrator(make_orchestrator):
    orch = make_orchestrator()
    orch.start()
    return orch
