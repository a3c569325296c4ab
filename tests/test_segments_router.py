from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from cryptofm.app import create_app
from cryptofm.config import Settings


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        transcript_path=tmp_path / "full-script.txt",
        queue_database_path=tmp_path / "queue.db",
        audio_current_dir=tmp_path / "current",
        audio_archive_dir=tmp_path / "spoken",
        transcript_poll_seconds=0,
        log_dir=None,
    )


@pytest.fixture
def provider(make_provider):
    return make_provider()


@pytest.fixture
def client(monkeypatch, settings, provider):
    monkeypatch.setattr(
        "cryptofm.app.GoogleTTSClient",
        SimpleNamespace(from_settings=lambda _settings: provider),
    )
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


def _queue(client: TestClient, settings: Settings, text: str) -> int:
    path = settings.transcript_path
    existing = path.read_text(encoding="utf-8") if path.exists() else ""
    path.write_text(existing + text, encoding="utf-8")
    response = client.get("/segments/check-new")
    assert response.status_code == 200
    body = response.json()
    assert body["hasNewSegment"] is True
    return body["segment"]["id"]


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_check_new_without_transcript(client: TestClient) -> None:
    response = client.get("/segments/check-new")

    assert response.status_code == 200
    assert response.json() == {"success": True, "hasNewSegment": False, "segment": None}


def test_next_on_empty_queue(client: TestClient) -> None:
    response = client.get("/segments/next")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["hasSegment"] is False
    assert body["segment"] is None


def test_segment_round_trip(client: TestClient, settings: Settings, provider) -> None:
    segment_id = _queue(client, settings, "Hello world. This is segment one.")

    body = client.get("/segments/next").json()
    segment = body["segment"]
    assert body["hasSegment"] is True
    assert segment["id"] == segment_id
    assert segment["status"] == "ready"
    assert segment["audioUrl"] == f"/audio/segment-{segment_id}.mp3"
    assert provider.calls == ["Hello world. This is segment one."]

    audio = client.get(segment["audioUrl"])
    assert audio.status_code == 200
    assert audio.content == b"<audio 1>"

    # Same segment again, without synthesizing a second time.
    assert client.get("/segments/next").json()["segment"]["id"] == segment_id
    assert len(provider.calls) == 1

    marked = client.post(f"/segments/{segment_id}/mark-spoken")
    assert marked.status_code == 200
    assert marked.json() == {
        "success": True,
        "message": f"Segment {segment_id} marked as spoken",
    }

    assert client.get("/segments/next").json()["hasSegment"] is False
    archived = client.get(f"/spoken/segment-{segment_id}.mp3")
    assert archived.status_code == 200
    assert client.get(f"/audio/segment-{segment_id}.mp3").status_code == 404


def test_next_reports_synthesis_failure(
    monkeypatch, settings: Settings, make_provider
) -> None:
    failing = make_provider(fail_on_call=1)
    monkeypatch.setattr(
        "cryptofm.app.GoogleTTSClient",
        SimpleNamespace(from_settings=lambda _settings: failing),
    )
    with TestClient(create_app(settings)) as client:
        segment_id = _queue(client, settings, "Try again later.")

        first = client.get("/segments/next").json()
        assert first["success"] is True
        assert first["hasSegment"] is True
        assert first["segment"]["audioUrl"] is None
        assert first["segment"]["status"] == "pending"
        assert "quota exceeded" in first["error"]

        second = client.get("/segments/next").json()
        assert second["error"] is None
        assert second["segment"]["audioUrl"] == f"/audio/segment-{segment_id}.mp3"


def test_mark_spoken_unknown_segment_succeeds(client: TestClient) -> None:
    response = client.post("/segments/42/mark-spoken")

    assert response.status_code == 200
    assert response.json()["success"] is True


def test_mark_spoken_without_audio_conflicts(client: TestClient, settings: Settings) -> None:
    segment_id = _queue(client, settings, "Not synthesized yet.")

    response = client.post(f"/segments/{segment_id}/mark-spoken")

    assert response.status_code == 409
    assert response.json()["success"] is False


def test_regenerate_audio(client: TestClient, settings: Settings, provider) -> None:
    missing = client.post("/segments/7/regenerate-audio")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "error": "Segment 7 not found"}

    segment_id = _queue(client, settings, "Regenerate me.")
    client.get("/segments/next")

    response = client.post(f"/segments/{segment_id}/regenerate-audio")
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "audioUrl": f"/audio/segment-{segment_id}.mp3",
    }
    assert len(provider.calls) == 2

    client.post(f"/segments/{segment_id}/mark-spoken")
    spoken = client.post(f"/segments/{segment_id}/regenerate-audio")
    assert spoken.status_code == 409


def test_status_and_cleanup(client: TestClient, settings: Settings) -> None:
    _queue(client, settings, "First item.")
    _queue(client, settings, " Second item.")
    client.get("/segments/next")

    status = client.get("/segments/status").json()
    assert status["segments"] == {"total": 2, "pending": 1, "ready": 1, "spoken": 0}
    assert status["cursor"] == len("First item. Second item.")
    assert status["directories"] == {"transcript": True, "current": True, "archive": True}
    assert status["files"] == {"current": 1, "archive": 0}

    cleanup = client.post("/segments/cleanup").json()
    assert cleanup["success"] is True
    assert (cleanup["removed"], cleanup["failed"]) == (0, 0)


def test_invalid_segment_id_is_rejected(client: TestClient) -> None:
    response = client.post("/segments/not-a-number/mark-spoken")

    assert response.status_code == 422
    assert response.json()["success"] is False


@pytest.mark.parametrize("action", ["mark-spoken", "regenerate-audio"])
def test_out_of_range_segment_id_is_rejected(client: TestClient, action: str) -> None:
    response = client.post(f"/segments/{2**70}/{action}")

    assert response.status_code == 422
    assert response.headers["content-type"].startswith("application/json")
    assert response.json()["success"] is False


def test_missing_service_reports_json_failure(client: TestClient) -> None:
    client.app.state.delivery_service = None

    response = client.get("/segments/next")

    assert response.status_code == 503
    assert response.json() == {"success": False, "error": "Segment service unavailable"}
