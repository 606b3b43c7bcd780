"""Integration tests: hit the FastAPI routes via Starlette TestClient."""

import json
import time
from contextlib import asynccontextmanager

import pytest
from starlette.testclient import TestClient

from swiper.services.config_service import ConfigService
from swiper.services.dispatcher import create_dispatcher
from swiper.services.http_client import HttpClientService
from swiper.services.monitor_service import MonitorService


def _build_app(data_dir: str):
    """Build a fully-wired FastAPI app pointing at *data_dir* (no daily monitor loop)."""
    from fastapi import FastAPI

    from swiper.routes import config_api, health, message_api, status_api

    cfg = ConfigService(data_dir)
    cfg.load()
    http = HttpClientService()
    dispatcher = create_dispatcher(cfg, http)
    monitor = MonitorService(cfg, dispatcher.memory_service, dispatcher)
    dispatcher.monitor_service = monitor

    @asynccontextmanager
    async def lifespan(app):
        await dispatcher.start()
        yield
        await monitor.stop()
        await dispatcher.stop()
        await http.close()

    app = FastAPI(lifespan=lifespan)

    # Attach state for DI
    app.state.config_service = cfg
    app.state.http_client = http
    app.state.dispatcher = dispatcher
    app.state.monitor_service = monitor
    app.state.notification_service = dispatcher.notification_service

    for r in (health, message_api, status_api, config_api):
        app.include_router(r.router)

    return app


@pytest.fixture()
def data_dir(tmp_path):
    """Create a temporary data directory with a minimal config."""
    config = {"options": {"max_downloads": 2, "download_path": str(tmp_path / "dl")}}
    (tmp_path / "config.json").write_text(json.dumps(config))
    return str(tmp_path)


@pytest.fixture()
def client(data_dir):
    app = _build_app(data_dir)
    with TestClient(app) as c:
        yield c


def _poll_messages(client, session_id, attempts=100):
    for _ in range(attempts):
        messages = client.get(f"/api/sessions/{session_id}/messages").json()["messages"]
        if messages:
            return messages
        time.sleep(0.01)
    return []


# -------------------------------------------------------------------
# Health / Version
# -------------------------------------------------------------------

def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_version(client):
    r = client.get("/api/version")
    assert r.status_code == 200
    assert "current" in r.json()


# -------------------------------------------------------------------
# Messages
# -------------------------------------------------------------------

def test_message_help_round_trip(client):
    r = client.post("/api/message", json={"session_id": "web-1", "message": "help"})
    assert r.status_code == 200
    assert r.json() == {"status": "accepted"}

    messages = _poll_messages(client, "web-1")
    assert len(messages) == 1
    assert messages[0].startswith("Commands:\ndownload, search, monitor")

    # Drained
    assert client.get("/api/sessions/web-1/messages").json()["messages"] == []


def test_unknown_command_reply(client):
    client.post("/api/message", json={"session_id": "web-2", "message": "dance"})
    assert _poll_messages(client, "web-2") == ['Not recognized. Type "help" to see what I can do.']


def test_session_is_persisted(client, data_dir):
    client.post("/api/message", json={"session_id": "web-3", "message": "status"})
    with open(f"{data_dir}/memory.json") as f:
        sessions = json.load(f)["sessions"]
    assert {"sessionType": "api", "sessionId": "web-3"} in sessions

    r = client.get("/api/status")
    assert "web-3" in r.json()["sessions"]


def test_message_validation(client):
    r = client.post("/api/message", json={"message": "help"})
    assert r.status_code == 400
    assert "session_id" in r.json()["error"]

    r = client.post("/api/message", json={"session_id": "x", "message": "  "})
    assert r.status_code == 400

    r = client.post("/api/message", json={"session_type": "fax", "session_id": "x", "message": "help"})
    assert r.status_code == 400


def test_malformed_bodies_rejected(client):
    headers = {"Content-Type": "application/json"}
    for path in ("/api/message", "/api/telegram/webhook", "/api/options"):
        r = client.post(path, content="{not json", headers=headers)
        assert r.status_code == 400
        assert r.json() == {"error": "Invalid JSON"}

    r = client.post("/api/message", json=["help"])
    assert r.status_code == 400
    r = client.post("/api/telegram/webhook", json="help")
    assert r.status_code == 400
    assert r.json() == {"error": "Expected a JSON object"}


def test_telegram_webhook_creates_session(client):
    update = {"update_id": 1, "message": {"chat": {"id": 4242}, "text": "help"}}
    r = client.post("/api/telegram/webhook", json=update)
    assert r.status_code == 200
    assert r.json() == {"ok": True}

    sessions = client.get("/api/status").json()["sessions"]
    assert sessions["4242"] == 0


def test_telegram_webhook_ignores_non_text(client):
    r = client.post("/api/telegram/webhook", json={"update_id": 2, "message": {"chat": {"id": 1}}})
    assert r.json() == {"ok": True}
    assert "1" not in client.get("/api/status").json()["sessions"]


def test_sessions_restored_on_start(data_dir):
    with TestClient(_build_app(data_dir)) as c:
        c.post("/api/message", json={"session_id": "web-4", "message": "help"})

    with TestClient(_build_app(data_dir)) as c:
        assert "web-4" in c.get("/api/status").json()["sessions"]


# -------------------------------------------------------------------
# Status / Monitor
# -------------------------------------------------------------------

def test_status_empty(client):
    data = client.get("/api/status").json()
    assert data["monitored"] == []
    assert data["queued"] == []
    assert data["downloading"] == []
    assert data["upcoming"] == []


def test_monitor_check(client):
    r = client.post("/api/monitor/check")
    assert r.status_code == 200
    assert r.json() == {"status": "started"}


def test_upcoming(client):
    r = client.get("/api/monitor/upcoming")
    assert r.status_code == 200
    assert r.json() == {"upcoming": []}


# -------------------------------------------------------------------
# Options API
# -------------------------------------------------------------------

def test_options_get(client):
    r = client.get("/api/options")
    assert r.status_code == 200
    assert r.json()["max_downloads"] == 2


def test_options_update(client, data_dir):
    r = client.post("/api/options", json={"max_downloads": 4, "upcoming_cooldown": 30})
    assert r.status_code == 200
    assert r.json()["options"]["max_downloads"] == 4

    assert client.get("/api/options").json()["upcoming_cooldown"] == 30
    with open(f"{data_dir}/config.json") as f:
        assert json.load(f)["options"]["max_downloads"] == 4


def test_options_invalid(client):
    r = client.post("/api/options", json={"max_downloads": "lots"})
    assert r.status_code == 400

    r = client.post("/api/options", json=[1, 2])
    assert r.status_code == 400
