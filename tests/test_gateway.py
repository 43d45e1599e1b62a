"""Integration tests for the REST API and the WebSocket wake sessions."""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from gateway.auth import CredentialGate, CredentialStore
from gateway.config import ConfigError
from gateway.main import create_app
from gateway.websocket import (
    BUSY_MESSAGE,
    INTERNAL_ERROR_MESSAGE,
    UNAUTHORIZED_MESSAGE,
    WakeSession,
)
from tests.conftest import PASSWORD, FakeProber, FakeSender, make_orchestrator
from waker.models import LogEvent

NAS = {"name": "NAS", "mac": "AA:BB:CC:DD:EE:01", "ip": "192.168.1.20"}


def wakeup(**overrides):
    payload = {"password": PASSWORD, **NAS, **overrides}
    return {"type": "wakeup", "payload": payload}


def receive_until_done(ws):
    messages = []
    while True:
        message = ws.receive_json()
        messages.append(message)
        if message["type"] == "done":
            return messages


@pytest.fixture()
def prober():
    return FakeProber()


@pytest.fixture()
def sender():
    return FakeSender()


@pytest.fixture()
def client(project_dir, prober, sender):
    app = create_app(str(project_dir), orchestrator=make_orchestrator(prober, sender))
    with TestClient(app) as test_client:
        yield test_client


# ── REST ──────────────────────────────────────────────────────────

class TestDevicesEndpoint:
    def test_lists_devices(self, client):
        resp = client.post("/api/devices", json={"password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "devices": [NAS]}

    def test_wrong_password(self, client):
        resp = client.post("/api/devices", json={"password": "wrong"})
        assert resp.status_code == 401
        body = resp.json()
        assert body["success"] is False
        assert "devices" not in body
        assert body["message"]

    def test_missing_password(self, client):
        resp = client.post("/api/devices", json={})
        assert resp.status_code == 401


class TestStartup:
    def test_missing_hash_aborts(self, tmp_path):
        (tmp_path / "config.yaml").write_text("auth:\n  hashed_password: ''\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            create_app(str(tmp_path))

    def test_static_frontend_is_served(self, project_dir):
        (project_dir / "public").mkdir()
        (project_dir / "public" / "index.html").write_text("<h1>wake</h1>", encoding="utf-8")
        app = create_app(str(project_dir), orchestrator=make_orchestrator(FakeProber(), FakeSender()))

        with TestClient(app) as test_client:
            resp = test_client.get("/")
            assert resp.status_code == 200
            assert "wake" in resp.text
            # API routes still take precedence over the static mount.
            assert test_client.post("/api/devices", json={}).status_code == 401


# ── WebSocket ─────────────────────────────────────────────────────

class TestWakeOverWebSocket:
    def test_already_awake(self, client, prober, sender):
        prober.results = [True]
        with client.websocket_connect("/ws") as ws:
            ws.send_json(wakeup())
            messages = receive_until_done(ws)

        assert messages == [
            {"type": "log", "message": "NAS is already awake"},
            {"type": "done", "success": True},
        ]
        assert sender.sent == []

    def test_wakes_after_polling(self, client, prober, sender):
        prober.results = [False, False, True]
        with client.websocket_connect("/ws") as ws:
            ws.send_json(wakeup())
            messages = receive_until_done(ws)

        assert [m.get("message") for m in messages[:-1]] == [
            "Wake signal sent, awaiting response from NAS...",
            "Probe 1...still asleep",
            "Probe 2...awake",
        ]
        assert messages[-1] == {"type": "done", "success": True}
        assert sender.sent == ["AA:BB:CC:DD:EE:01"]

    def test_unauthorized(self, client, prober, sender):
        with client.websocket_connect("/ws") as ws:
            ws.send_json(wakeup(password="wrong"))
            messages = receive_until_done(ws)

        assert messages == [
            {"type": "log", "message": UNAUTHORIZED_MESSAGE},
            {"type": "done", "success": False},
        ]
        assert prober.calls == []
        assert sender.sent == []

    def test_missing_mac_fails_run_and_keeps_connection(self, client, prober):
        prober.results = [True]
        with client.websocket_connect("/ws") as ws:
            request = wakeup()
            del request["payload"]["mac"]
            ws.send_json(request)
            first = receive_until_done(ws)

            # Same connection still serves the next request.
            ws.send_json(wakeup())
            second = receive_until_done(ws)

        assert first[-1] == {"type": "done", "success": False}
        assert "mac" in first[0]["message"]
        assert second[-1] == {"type": "done", "success": True}

    @pytest.mark.parametrize("raw", [
        "this is not json",
        "[1, 2, 3]",
        json.dumps({"type": "wakeup"}),
        json.dumps({"type": "wakeup", "payload": {"password": PASSWORD, "mac": 42}}),
    ])
    def test_malformed_message(self, client, raw):
        with client.websocket_connect("/ws") as ws:
            ws.send_text(raw)
            messages = receive_until_done(ws)

            assert messages == [
                {"type": "log", "message": INTERNAL_ERROR_MESSAGE},
                {"type": "done", "success": False},
            ]

            ws.send_json(wakeup(password="wrong"))
            assert receive_until_done(ws)[-1] == {"type": "done", "success": False}

    def test_binary_frame_is_parsed_as_json(self, client, prober):
        prober.results = [True]
        with client.websocket_connect("/ws") as ws:
            ws.send_bytes(json.dumps(wakeup()).encode("utf-8"))
            first = receive_until_done(ws)

            ws.send_json(wakeup(password="wrong"))
            second = receive_until_done(ws)

        assert first == [
            {"type": "log", "message": "NAS is already awake"},
            {"type": "done", "success": True},
        ]
        assert second[-1] == {"type": "done", "success": False}

    def test_undecodable_binary_frame_keeps_connection(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_bytes(b"\xff\xfe\x00")
            messages = receive_until_done(ws)

            ws.send_json(wakeup(password="wrong"))
            second = receive_until_done(ws)

        assert messages == [
            {"type": "log", "message": INTERNAL_ERROR_MESSAGE},
            {"type": "done", "success": False},
        ]
        assert second[-1] == {"type": "done", "success": False}

    def test_null_name_falls_back_to_ip(self, client, prober):
        prober.results = [True]
        with client.websocket_connect("/ws") as ws:
            ws.send_json(wakeup(name=None))
            messages = receive_until_done(ws)

        assert messages == [
            {"type": "log", "message": "192.168.1.20 is already awake"},
            {"type": "done", "success": True},
        ]

    def test_unknown_type_is_ignored(self, client, prober):
        prober.results = [True]
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "ping"})
            ws.send_json(wakeup())
            messages = receive_until_done(ws)

        assert messages == [
            {"type": "log", "message": "NAS is already awake"},
            {"type": "done", "success": True},
        ]

    def test_session_count(self, client):
        sessions = client.app.state.sessions
        with client.websocket_connect("/ws") as ws:
            ws.send_json(wakeup(password="wrong"))
            receive_until_done(ws)
            assert sessions.client_count == 1


# ── Session lifecycle ─────────────────────────────────────────────

class FakeWebSocket:
    """Feeds queued inbound messages; disconnects once `closed` is set."""

    def __init__(self, inbound):
        self.inbound = list(inbound)
        self.sent = []
        self.closed = asyncio.Event()

    async def receive(self):
        if self.inbound:
            return {"type": "websocket.receive", "text": self.inbound.pop(0)}
        await self.closed.wait()
        return {"type": "websocket.disconnect", "code": 1001}

    async def send_text(self, text):
        self.sent.append(json.loads(text))


class HangingProber:
    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = False

    async def probe(self, address, timeout):
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


@pytest.fixture()
def gate(password_hash):
    return CredentialGate(CredentialStore(password_hash))


class TestSessionLifecycle:
    async def test_disconnect_cancels_run(self, gate):
        prober = HangingProber()
        sender = FakeSender()
        ws = FakeWebSocket([json.dumps(wakeup())])
        session = WakeSession(ws, gate, make_orchestrator(prober, sender))

        serve = asyncio.create_task(session.serve())
        await asyncio.wait_for(prober.started.wait(), timeout=5)
        ws.closed.set()
        await asyncio.wait_for(serve, timeout=5)

        assert prober.cancelled is True
        assert session.busy is False
        assert sender.sent == []
        assert ws.sent == []

    async def test_second_request_while_running_gets_log_only(self, gate):
        prober = HangingProber()
        ws = FakeWebSocket([json.dumps(wakeup())])
        session = WakeSession(ws, gate, make_orchestrator(prober, FakeSender()))

        serve = asyncio.create_task(session.serve())
        await asyncio.wait_for(prober.started.wait(), timeout=5)

        await session._dispatch(json.dumps(wakeup()))
        assert ws.sent == [{"type": "log", "message": BUSY_MESSAGE}]

        ws.closed.set()
        await asyncio.wait_for(serve, timeout=5)
        assert prober.cancelled is True

    async def test_orchestrator_crash_ends_with_single_done(self, gate):
        class BrokenOrchestrator:
            async def run(self, device):
                yield LogEvent("starting")
                raise RuntimeError("boom")

        ws = FakeWebSocket([json.dumps(wakeup())])
        session = WakeSession(ws, gate, BrokenOrchestrator())

        serve = asyncio.create_task(session.serve())
        for _ in range(200):
            if ws.sent and ws.sent[-1]["type"] == "done":
                break
            await asyncio.sleep(0.01)
        ws.closed.set()
        await asyncio.wait_for(serve, timeout=5)

        assert ws.sent == [
            {"type": "log", "message": "starting"},
            {"type": "log", "message": INTERNAL_ERROR_MESSAGE},
            {"type": "done", "success": False},
        ]
