import pytest

from multipart_upload.core.config import MIB
from multipart_upload.core.errors import (
    AlreadyCompletedError,
    ConfigurationError,
    NotFoundError,
    PartValidationError,
    StoreError,
    ValidationError,
)
from multipart_upload.schemas import PartETag


def open_session(uploads, size=12 * MIB, chunk_size=5 * MIB):
    return uploads.initialize_session("movie.mp4", size, "video/mp4", chunk_size)


def commit_all_parts(store, session, size):
    parts = []
    for n in range(session.min_part, session.max_part + 1):
        length = min(session.chunk_size, size - (n - 1) * session.chunk_size)
        parts.append(PartETag(part_number=n, etag=store.commit_part(session.session_id, n, length)))
    return parts


class TestInitializeSession:

    def test_returns_session_and_plan(self, uploads, store):
        session = open_session(uploads, size=100 * MIB, chunk_size=8 * MIB)

        assert session.session_id in store.sessions
        assert session.object_key.startswith("uploads/")
        assert session.object_key.endswith("/movie.mp4")
        assert session.chunk_size == 8 * MIB
        assert (session.min_part, session.max_part) == (1, 13)

    def test_object_keys_do_not_collide(self, uploads):
        assert open_session(uploads).object_key != open_session(uploads).object_key

    def test_invalid_metadata_makes_no_remote_call(self, uploads, store):
        with pytest.raises(ValidationError):
            uploads.initialize_session("notes.txt", MIB, "text/plain")
        with pytest.raises(ConfigurationError):
            uploads.initialize_session("movie.mp4", 10 * MIB, "video/mp4", MIB)
        assert store.sessions == {}


class TestPartUploadUrls:

    def test_one_url_per_part_in_order(self, uploads):
        session = open_session(uploads)

        urls = uploads.get_part_upload_urls(session.session_id, session.object_key, 1, 3)

        assert [u.part_number for u in urls] == [1, 2, 3]
        assert all(f"partNumber={u.part_number}" in u.url for u in urls)
        assert all("expires=3600" in u.url for u in urls)
        assert len({u.expires_at for u in urls}) == 1

    @pytest.mark.parametrize("start, end", [(0, 3), (-1, 2), (5, 4), (1, 101)])
    def test_bad_range_rejected(self, uploads, start, end):
        session = open_session(uploads)
        with pytest.raises(ValidationError):
            uploads.get_part_upload_urls(session.session_id, session.object_key, start, end)

    def test_hundred_parts_allowed(self, uploads):
        session = open_session(uploads)
        assert len(uploads.get_part_upload_urls(session.session_id, session.object_key, 1, 100)) == 100

    def test_signing_failure_returns_nothing(self, uploads, store, monkeypatch):
        session = open_session(uploads)

        def presign(session_id, object_key, part_number, ttl_seconds):
            if part_number == 3:
                raise RuntimeError("signer unavailable")
            return "http://store.test/part"

        monkeypatch.setattr(store, "presign_part_upload", presign)
        with pytest.raises(StoreError, match="part 3"):
            uploads.get_part_upload_urls(session.session_id, session.object_key, 1, 5)


class TestUploadedParts:

    def test_lists_committed_parts(self, uploads, store):
        session = open_session(uploads)
        store.commit_part(session.session_id, 2, 5 * MIB)
        store.commit_part(session.session_id, 1, 5 * MIB)

        parts = uploads.get_uploaded_parts(session.session_id, session.object_key)

        assert [p.part_number for p in parts] == [1, 2]
        assert all(p.size_bytes == 5 * MIB for p in parts)

    def test_unknown_session(self, uploads):
        with pytest.raises(NotFoundError):
            uploads.get_uploaded_parts("upload-missing", "uploads/x/movie.mp4")


class TestCompleteUpload:

    def test_finalizes_and_persists(self, uploads, store, finalized_objects):
        session = open_session(uploads)
        parts = commit_all_parts(store, session, 12 * MIB)

        result = uploads.complete_upload(session.session_id, session.object_key, list(reversed(parts)))

        assert result.size_bytes == 12 * MIB
        assert result.file_name == "movie.mp4"
        assert result.status == "COMPLETED"
        assert result.integrity_tag == '"final-3"'
        assert result.download_url.startswith(f"http://store.test/{session.object_key}")
        assert finalized_objects.exists_by_object_key(session.object_key)

    def test_second_completion_is_rejected_without_remote_call(self, uploads, store):
        session = open_session(uploads)
        parts = commit_all_parts(store, session, 12 * MIB)
        uploads.complete_upload(session.session_id, session.object_key, parts)

        with pytest.raises(AlreadyCompletedError):
            uploads.complete_upload(session.session_id, session.object_key, parts)

        assert store.complete_calls == [session.session_id]
        assert store.abort_calls == []

    def test_invalid_part_list_makes_no_remote_call(self, uploads, store):
        session = open_session(uploads)
        parts = commit_all_parts(store, session, 12 * MIB)

        with pytest.raises(PartValidationError):
            uploads.complete_upload(session.session_id, session.object_key, [parts[0], parts[2]])

        assert store.complete_calls == []
        assert session.session_id in store.sessions

    def test_store_failure_aborts_session(self, uploads, store, finalized_objects):
        session = open_session(uploads)
        parts = commit_all_parts(store, session, 12 * MIB)
        store.fail_on_complete = True

        with pytest.raises(StoreError):
            uploads.complete_upload(session.session_id, session.object_key, parts)

        assert store.abort_calls == [session.session_id]
        assert session.session_id not in store.sessions
        assert not finalized_objects.exists_by_object_key(session.object_key)

    def test_stat_failure_after_complete_triggers_cleanup(self, uploads, store, finalized_objects):
        session = open_session(uploads)
        parts = commit_all_parts(store, session, 12 * MIB)
        store.fail_on_stat = True

        with pytest.raises(StoreError):
            uploads.complete_upload(session.session_id, session.object_key, parts)

        assert store.abort_calls == [session.session_id]
        assert not finalized_objects.exists_by_object_key(session.object_key)

    def test_on_completed_runs_after_store_complete(self, uploads, store):
        session = open_session(uploads)
        parts = commit_all_parts(store, session, 12 * MIB)
        seen = []

        uploads.complete_upload(
            session.session_id,
            session.object_key,
            parts,
            on_completed=lambda: seen.append(list(store.complete_calls)),
        )

        assert seen == [[session.session_id]]


class TestAbortUpload:

    def test_aborts_live_session(self, uploads, store):
        session = open_session(uploads)

        assert uploads.abort_upload(session.session_id, session.object_key) is True
        assert session.session_id not in store.sessions

    def test_unknown_session_is_a_no_op(self, uploads):
        assert uploads.abort_upload("upload-gone", "uploads/x/movie.mp4") is False

    def test_abort_twice_is_a_no_op(self, uploads):
        session = open_session(uploads)
        uploads.abort_upload(session.session_id, session.object_key)

        assert uploads.abort_upload(session.session_id, session.object_key) is False

    def test_blank_identifiers_rejected(self, uploads):
        with pytest.raises(ValidationError):
            uploads.abort_upload("", "uploads/x/movie.mp4")
