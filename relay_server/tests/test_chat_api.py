import pytest
from fastapi.testclient import TestClient

from app.core.errors import BackendUnavailable
from app.main import create_app


@pytest.fixture
def api(test_settings, store, helpers):
    backend = helpers.ScriptedBackend(
        [
            (True, [helpers.text("A")]),
            (False, [helpers.text("B"), helpers.options("Yes")]),
        ]
    )
    app = create_app(
        test_settings,
        backend=backend,
        transcriber=helpers.FakeTranscriber(),
        telegram=helpers.FakeTelegram(),
        session_store=store,
    )
    return TestClient(app), backend


def test_chat_returns_normalized_reply(api, store) -> None:
    client, backend = api

    resp = client.post(
        "/chat",
        json={"conversation_id": "web-1", "text": "oi", "first_name": "Ana", "variables": {"plan": "gold"}},
    )

    assert resp.status_code == 200
    assert resp.json() == {
        "display_text": "B",
        "selectable_options": [{"label": "Yes", "value": "Yes"}],
    }
    assert backend.calls[0]["context"].injection == {"plan": "gold", "first_name": "Ana"}
    assert store.get("web-1").injection == {"plan": "gold", "first_name": "Ana"}


def test_chat_rejects_blank_conversation_id(api) -> None:
    client, _ = api
    resp = client.post("/chat", json={"conversation_id": "  ", "text": "oi"})
    assert resp.status_code == 422


def test_chat_maps_backend_failure_to_502(test_settings, store, helpers) -> None:
    app = create_app(
        test_settings,
        backend=helpers.ScriptedBackend([BackendUnavailable("down")]),
        transcriber=helpers.FakeTranscriber(),
        telegram=helpers.FakeTelegram(),
        session_store=store,
    )

    resp = TestClient(app).post("/chat", json={"conversation_id": "web-1", "text": "oi"})

    assert resp.status_code == 502
    assert resp.json()["detail"]["code"] == "backend_unavailable"


def test_chat_maps_continuation_limit(test_settings, store, helpers) -> None:
    app = create_app(
        test_settings,
        backend=helpers.ScriptedBackend([(True, [helpers.text("loop")])], repeat_last=True),
        transcriber=helpers.FakeTranscriber(),
        telegram=helpers.FakeTelegram(),
        session_store=store,
    )

    resp = TestClient(app).post("/chat", json={"conversation_id": "web-1", "text": "oi"})

    assert resp.status_code == 500
    assert resp.json()["detail"]["code"] == "continuation_limit_exceeded"
    assert store.get_entry("web-1") is None


def test_ws_chat_roundtrip_and_error_frames(api) -> None:
    client, _ = api

    with client.websocket_connect("/ws/chat") as ws:
        ws.send_json({"text": "missing id"})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["code"] == "invalid_turn_request"

        ws.send_json({"conversation_id": "ws-1", "text": "oi"})
        reply = ws.receive_json()
        assert reply == {
            "type": "reply",
            "display_text": "B",
            "selectable_options": [{"label": "Yes", "value": "Yes"}],
        }


def test_status_endpoints(api) -> None:
    client, _ = api
    client.post("/chat", json={"conversation_id": "web-1", "text": "oi"})

    summary = client.get("/status/sessions").json()
    assert summary["sessions"] == 1
    assert summary["ttl_seconds"] is None

    detail = client.get("/status/sessions/web-1")
    assert detail.status_code == 200
    assert detail.json()["conversation_id"] == "web-1"

    assert client.get("/status/sessions/nope").status_code == 404
    assert client.post("/status/sessions/prune").json() == {"pruned": 0}

    assert client.delete("/status/sessions/web-1").json() == {"deleted": "web-1"}
    assert client.delete("/status/sessions/web-1").status_code == 404


def test_health(api) -> None:
    client, _ = api
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["environment"] == "test"
