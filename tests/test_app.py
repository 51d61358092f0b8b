import asyncio
import importlib

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from src.relay.errors import CallPlacementError
from src.relay.session import SessionRegistry

# The package re-exports the FastAPI instance under the same name as the module
app_module = importlib.import_module("src.relay.app")


class FakeGateway:
    """Records the session handed over by the acceptor instead of dialing OpenAI."""

    def __init__(self):
        self.seen = []

    async def connect(self, session) -> bool:
        websocket, ready = await session.telephony_leg()
        self.seen.append((session.connection_id, websocket is not None, ready))
        return False


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(registry, gateway):
    app = app_module.app
    app.dependency_overrides[app_module.get_registry] = lambda: registry
    app.dependency_overrides[app_module.get_gateway] = lambda: gateway

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def test_home_page(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == "Home Page"
    assert response.headers["content-type"].startswith("text/plain")


def test_health_without_session(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["active_session"] is None
    assert data["config"]["stream_url"] == "wss://caller.example.com/ws"


def test_media_stream_marks_telephony_ready_and_hands_over(client, registry, gateway):
    with client.websocket_connect("/ws") as websocket:
        with pytest.raises(WebSocketDisconnect):
            websocket.receive_text()

    assert len(gateway.seen) == 1
    _, has_socket, ready = gateway.seen[0]
    assert has_socket and ready
    assert len(registry) == 0


def test_overlapping_media_stream_is_rejected(client, registry, gateway):
    asyncio.run(registry.open("existing"))

    with client.websocket_connect("/ws") as websocket:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            websocket.receive_text()

    assert exc_info.value.code == app_module.TRY_AGAIN_LATER
    assert gateway.seen == []
    assert [s.connection_id for s in asyncio.run(registry.active())] == ["existing"]


class FailingAcceptSocket:
    """A websocket whose upgrade handshake fails."""

    def __init__(self):
        self.closed = False

    async def accept(self):
        raise RuntimeError("upgrade failed")

    async def close(self, code: int = 1000, reason: str | None = None):
        self.closed = True


def test_failed_upgrade_is_not_handed_over(registry, gateway, caplog):
    websocket = FailingAcceptSocket()

    with caplog.at_level("ERROR"):
        asyncio.run(app_module.media_stream(websocket, registry=registry, gateway=gateway))

    assert gateway.seen == []
    assert len(registry) == 0
    assert not websocket.closed
    assert "Error upgrading first connection" in caplog.text


def test_health_reports_active_session(client, registry):
    asyncio.run(registry.open("live1"))

    data = client.get("/health").json()

    assert data["active_session"]["connection_id"] == "live1"
    assert data["active_session"]["telephony_ready"] is False


class FakeInitiator:
    placed = []
    error = None

    def __init__(self, settings):
        self.settings = settings

    def place_call(self, to_number):
        if FakeInitiator.error is not None:
            raise FakeInitiator.error
        FakeInitiator.placed.append(to_number)
        return "CA123"


@pytest.fixture
def calling_settings(settings, monkeypatch):
    FakeInitiator.placed = []
    FakeInitiator.error = None
    current = settings.model_copy(update={"place_call_on_startup": True})
    monkeypatch.setattr(app_module, "get_settings", lambda: current)
    monkeypatch.setattr(app_module, "CallInitiator", FakeInitiator)
    return current


def test_call_is_placed_on_startup(calling_settings):
    with TestClient(app_module.app) as test_client:
        assert test_client.get("/").status_code == 200

    assert FakeInitiator.placed == ["+15550001111"]


def test_failed_call_aborts_startup(calling_settings):
    FakeInitiator.error = CallPlacementError("Invalid 'To' number")

    with pytest.raises(CallPlacementError):
        with TestClient(app_module.app):
            pass


def test_no_call_when_disabled(settings, monkeypatch):
    FakeInitiator.placed = []
    FakeInitiator.error = None
    monkeypatch.setattr(app_module, "get_settings", lambda: settings)
    monkeypatch.setattr(app_module, "CallInitiator", FakeInitiator)

    with TestClient(app_module.app):
        pass

    assert FakeInitiator.placed == []
