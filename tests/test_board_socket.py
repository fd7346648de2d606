import pytest
from fastapi.testclient import TestClient

from conftest import stroke
from main import create_app


@pytest.fixture
def app_client(db_dir, monkeypatch):
    monkeypatch.setenv("DATABASE_DIR", str(db_dir))
    monkeypatch.setenv("QUIET_PERIOD_SECONDS", "60")
    monkeypatch.setenv("AUTOSAVE_DELAY_SECONDS", "60")
    for key in ("OPENAI_API_KEY", "OPENROUTER_API_KEY", "MISTRAL_API_KEY", "DATABASE_RESET_ON_START"):
        monkeypatch.delenv(key, raising=False)

    with TestClient(create_app()) as client:
        yield client


def test_health_reports_missing_keys(app_client):
    body = app_client.get("/health").json()

    assert body["ok"] is True
    assert body["db_initialized"] is True
    assert body["openrouter_configured"] is False


def test_unknown_board_is_rejected(app_client):
    with app_client.websocket_connect("/ws/boards/missing") as ws:
        assert ws.receive_json() == {"type": "error", "detail": "Board not found"}


def test_board_session_round_trip(app_client):
    board_id = app_client.post("/boards", json={"title": "Live"}).json()["id"]

    with app_client.websocket_connect(f"/ws/boards/{board_id}") as ws:
        ready = ws.receive_json()
        assert ready["type"] == "session.ready"
        assert ready["board_id"] == board_id
        assert ready["mode"] == "suggest"
        assert ready["snapshot"]["shapes"] == []

        ws.send_json({"type": "canvas.ops", "ops": [{"op": "create", "shape": stroke().to_dict()}]})
        ws.send_json({"type": "assist.mode", "mode": "feedback", "request_id": "m1"})
        assert ws.receive_json() == {"type": "assist.mode", "mode": "feedback", "request_id": "m1"}

        ws.send_json({"type": "assist.mode", "mode": "shout", "request_id": "m2"})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["request_id"] == "m2"

        ws.send_text("not json")
        assert ws.receive_json() == {"type": "error", "detail": "Payload must be JSON"}

        ws.send_json({"type": "generation.cancel", "request_id": "c1"})
        assert ws.receive_json() == {"type": "generation.cancelled", "cancelled": False, "request_id": "c1"}

    saved = app_client.get(f"/boards/{board_id}").json()
    assert [shape["id"] for shape in saved["data"]["shapes"]] == ["shape:stroke"]
