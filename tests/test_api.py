import pytest
from fastapi.testclient import TestClient

from multipart_upload.core.config import MIB
from multipart_upload.main import create_app


@pytest.fixture
def client(store, engine, config):
    app = create_app(store=store, db_engine=engine, config=config)
    with TestClient(app) as test_client:
        yield test_client


def wait_for_workers(client):
    client.app.state.orchestrator.pool.join()


def init_upload(client, size=12 * MIB):
    response = client.post("/api/uploads/init", json={
        "file_name": "movie.mp4",
        "size_bytes": size,
        "content_type": "video/mp4",
        "chunk_size": 5 * MIB,
    })
    assert response.status_code == 200
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {
        "status": "healthy",
        "workers": "running",
        "tracked_uploads": 0,
    }


def test_client_side_upload_flow(client, store):
    session = init_upload(client)
    assert (session["min_part"], session["max_part"]) == (1, 3)

    urls = client.post("/api/uploads/presigned-urls", json={
        "session_id": session["session_id"],
        "object_key": session["object_key"],
        "start_part": 1,
        "end_part": 3,
    }).json()
    assert [u["part_number"] for u in urls] == [1, 2, 3]

    sizes = {1: 5 * MIB, 2: 5 * MIB, 3: 2 * MIB}
    parts = [
        {"part_number": n, "etag": store.commit_part(session["session_id"], n, size)}
        for n, size in sizes.items()
    ]
    listed = client.get(
        f"/api/uploads/{session['session_id']}/parts",
        params={"object_key": session["object_key"]},
    ).json()
    assert [p["part_number"] for p in listed] == [1, 2, 3]

    response = client.post("/api/uploads/complete", json={
        "session_id": session["session_id"],
        "object_key": session["object_key"],
        "parts": parts,
    })
    assert response.status_code == 200
    body = response.json()
    assert body["size_bytes"] == 12 * MIB
    assert body["status"] == "COMPLETED"
    assert body["download_url"]

    again = client.post("/api/uploads/complete", json={
        "session_id": session["session_id"],
        "object_key": session["object_key"],
        "parts": parts,
    })
    assert again.status_code == 409
    assert again.json()["error"] == "already_completed"


def test_validation_errors_map_to_400(client):
    response = client.post("/api/uploads/init", json={
        "file_name": "notes.txt",
        "size_bytes": 1024,
        "content_type": "text/plain",
    })

    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_bad_chunk_size_is_configuration_error(client):
    response = client.post("/api/uploads/init", json={
        "file_name": "movie.mp4",
        "size_bytes": 10 * MIB,
        "content_type": "video/mp4",
        "chunk_size": 1024,
    })

    assert response.status_code == 400
    assert response.json()["error"] == "configuration_error"


def test_gap_in_parts_is_rejected(client):
    session = init_upload(client)

    response = client.post("/api/uploads/complete", json={
        "session_id": session["session_id"],
        "object_key": session["object_key"],
        "parts": [{"part_number": 1, "etag": "a"}, {"part_number": 3, "etag": "c"}],
    })

    assert response.status_code == 400
    assert response.json()["error"] == "part_validation_error"


def test_parts_of_unknown_session_is_404(client):
    response = client.get("/api/uploads/upload-gone/parts", params={"object_key": "uploads/x/movie.mp4"})

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_abort_unknown_session_succeeds(client):
    response = client.post("/api/uploads/abort", json={
        "session_id": "upload-gone",
        "object_key": "uploads/x/movie.mp4",
    })

    assert response.status_code == 200
    assert response.json()["aborted"] is False


def test_async_upload_and_progress(client):
    data = b"\x00" * (6 * MIB)

    response = client.post(
        "/api/uploads/async",
        files={"file": ("clip.mp4", data, "video/mp4")},
        data={"chunk_size": str(5 * MIB)},
    )
    assert response.status_code == 202
    job_id = response.json()["job_id"]

    wait_for_workers(client)
    progress = client.get(f"/api/uploads/async/{job_id}").json()
    assert progress["status"] == "COMPLETED"
    assert progress["progress"] == 100.0
    assert progress["total_parts"] == 2
    assert progress["file_size"] == 6 * MIB


def test_async_failure_then_resume(client, store):
    store.fail_on_part = 2
    response = client.post(
        "/api/uploads/async",
        files={"file": ("clip.mp4", b"\x01" * (11 * MIB), "video/mp4")},
        data={"chunk_size": str(5 * MIB)},
    )
    job_id = response.json()["job_id"]
    wait_for_workers(client)
    assert client.get(f"/api/uploads/async/{job_id}").json()["status"] == "FAILED"
    assert [t["job_id"] for t in client.get("/api/uploads/async").json()] == [job_id]

    store.fail_on_part = None
    resumed = client.post(f"/api/uploads/async/{job_id}/resume")
    assert resumed.status_code == 202
    wait_for_workers(client)

    progress = client.get(f"/api/uploads/async/{job_id}").json()
    assert progress["status"] == "COMPLETED"
    assert progress["uploaded_parts"] == 3

    again = client.post(f"/api/uploads/async/{job_id}/resume")
    assert again.status_code == 409
    assert again.json()["error"] == "resume_not_allowed"


def test_unknown_job_is_404(client):
    response = client.get("/api/uploads/async/no-such-job")

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_abort_failed_async_upload(client, store):
    store.fail_on_part = 2
    response = client.post(
        "/api/uploads/async",
        files={"file": ("clip.mp4", b"\x01" * (11 * MIB), "video/mp4")},
        data={"chunk_size": str(5 * MIB)},
    )
    job_id = response.json()["job_id"]
    wait_for_workers(client)
    task = client.app.state.orchestrator.task_store.find_by_job_id(job_id)

    aborted = client.post("/api/uploads/abort", json={
        "session_id": task.session_id,
        "object_key": task.object_key,
    })

    assert aborted.status_code == 200
    assert aborted.json()["aborted"] is True
    progress = client.get(f"/api/uploads/async/{job_id}").json()
    assert (progress["status"], progress["message"]) == ("FAILED", "Upload aborted")
    assert client.get("/api/uploads/async").json() == []
    again = client.post(f"/api/uploads/async/{job_id}/resume")
    assert again.status_code == 409
    assert again.json()["error"] == "resume_not_allowed"
    assert client.get("/health").json()["tracked_uploads"] == 1
