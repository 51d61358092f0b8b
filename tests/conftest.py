"""Shared fixtures: test settings and in-memory fakes for both websocket legs."""

import asyncio
import json
import os

# Must be set before importing modules that load settings.
os.environ.setdefault("PHONE_NUMBER_TO", "+15550001111")
os.environ.setdefault("PHONE_NUMBER_FROM", "+15550002222")
os.environ.setdefault("DOMAIN", "caller.example.com")
os.environ.setdefault("OPENAI_API_KEY", "test-key-for-import-only")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "AC00000000000000000000000000000000")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test-token")
os.environ["PLACE_CALL_ON_STARTUP"] = "false"

import pytest
from fastapi import WebSocketDisconnect
from websockets.exceptions import ConnectionClosedOK

from src.relay.session import CallSession
from src.utils.config import Settings


_HANG_UP = object()


class _FakeLeg:
    def __init__(self) -> None:
        self._incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[str] = []
        self.closed = False
        self.close_calls = 0

    def feed(self, *messages) -> None:
        for message in messages:
            if not isinstance(message, (str, bytes)):
                message = json.dumps(message)
            self._incoming.put_nowait(message)

    def hang_up(self) -> None:
        """Simulate the peer closing the connection."""
        self._incoming.put_nowait(_HANG_UP)

    @property
    def sent_json(self) -> list[dict]:
        return [json.loads(message) for message in self.sent]

    async def _next(self):
        if self.closed:
            raise self._closed_error()
        message = await self._incoming.get()
        if message is _HANG_UP:
            raise self._closed_error()
        return message

    def _record(self, data: str) -> None:
        if self.closed:
            raise self._closed_error()
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_calls += 1
        self.closed = True
        self._incoming.put_nowait(_HANG_UP)

    def _closed_error(self) -> Exception:
        raise NotImplementedError


class FakeTwilioSocket(_FakeLeg):
    """Stands in for the FastAPI WebSocket of the Twilio Media Stream."""

    async def receive(self) -> dict:
        try:
            message = await self._next()
        except WebSocketDisconnect as e:
            return {"type": "websocket.disconnect", "code": e.code}
        key = "bytes" if isinstance(message, bytes) else "text"
        return {"type": "websocket.receive", key: message}

    async def send_text(self, data: str) -> None:
        self._record(data)

    def _closed_error(self) -> Exception:
        return WebSocketDisconnect(code=1000)


class FakeRealtimeSocket(_FakeLeg):
    """Stands in for the websockets client connection to OpenAI."""

    async def recv(self):
        return await self._next()

    async def send(self, data: str) -> None:
        self._record(data)

    def _closed_error(self) -> Exception:
        return ConnectionClosedOK(None, None)


class FakeDialer:
    """Replaces websockets.connect and records how it was called."""

    def __init__(self, socket=None, error: Exception | None = None) -> None:
        self.socket = socket or FakeRealtimeSocket()
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    async def __call__(self, url: str, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.socket


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        phone_number_to="+15550001111",
        phone_number_from="+15550002222",
        domain="caller.example.com",
        openai_api_key="sk-test",
        twilio_account_sid="AC123",
        twilio_auth_token="token",
        place_call_on_startup=False,
    )


@pytest.fixture
def twilio_ws() -> FakeTwilioSocket:
    return FakeTwilioSocket()


@pytest.fixture
def openai_ws() -> FakeRealtimeSocket:
    return FakeRealtimeSocket()


@pytest.fixture
def make_session():
    """Build a session with whichever legs are given already attached."""

    async def _make(twilio_ws=None, openai_ws=None) -> CallSession:
        session = CallSession("test")
        if twilio_ws is not None:
            await session.mark_telephony_ready(twilio_ws)
        if openai_ws is not None:
            await session.set_ai_leg(openai_ws)
        return session

    return _make


@pytest.fixture
def fake_dialer(openai_ws) -> FakeDialer:
    return FakeDialer(openai_ws)
