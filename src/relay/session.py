"""
State for a live call: the two websocket legs and the Twilio stream id.

One ``CallSession`` is created per accepted media-stream connection and
handed to the gateway and relay. ``SessionRegistry`` tracks the sessions
that are currently live and refuses to open a second one.
"""

import asyncio
import logging
import uuid
from typing import Any, Optional

from fastapi.websockets import WebSocketState

from .errors import SessionBusyError

logger = logging.getLogger(__name__)


class CallSession:
    """
    The two legs of a relayed call plus the stream bookkeeping.

    Every field is read and written under ``_lock``. The lock is never held
    across a socket operation; ``close`` detaches the sockets first and
    closes them afterwards.
    """

    def __init__(self, connection_id: Optional[str] = None):
        self.connection_id = connection_id or str(uuid.uuid4())[:8]

        self._lock = asyncio.Lock()
        self._telephony_ws: Optional[Any] = None
        self._ai_ws: Optional[Any] = None
        self._ready = False
        self._stream_sid = ""
        self._call_sid: Optional[str] = None
        self._closed = False

    async def mark_telephony_ready(self, websocket: Any) -> None:
        """Record the Twilio socket and flag the telephony leg as ready."""
        async with self._lock:
            self._telephony_ws = websocket
            self._ready = True

    async def telephony_leg(self) -> tuple[Optional[Any], bool]:
        """Return the Twilio socket together with the readiness flag."""
        async with self._lock:
            return self._telephony_ws, self._ready

    async def is_telephony_ready(self) -> bool:
        async with self._lock:
            return self._ready and self._telephony_ws is not None

    async def set_ai_leg(self, websocket: Any) -> None:
        async with self._lock:
            self._ai_ws = websocket

    async def legs(self) -> tuple[Optional[Any], Optional[Any]]:
        """Return ``(telephony, ai)`` sockets as one consistent snapshot."""
        async with self._lock:
            return self._telephony_ws, self._ai_ws

    async def stream_sid(self) -> str:
        async with self._lock:
            return self._stream_sid

    async def call_sid(self) -> Optional[str]:
        async with self._lock:
            return self._call_sid

    async def record_stream_start(self, stream_sid: str, call_sid: Optional[str] = None) -> bool:
        """
        Store the stream id from Twilio's ``start`` event.

        Only the first start of a call is recorded.

        Returns:
            True if the id was stored, False if one was already set.
        """
        async with self._lock:
            if self._stream_sid:
                return False
            self._stream_sid = stream_sid
            if call_sid:
                self._call_sid = call_sid
            return True

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Close both legs. Safe to call more than once."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            self._ready = False
            telephony_ws, ai_ws = self._telephony_ws, self._ai_ws

        await _close_quietly(telephony_ws, "telephony")
        await _close_quietly(ai_ws, "AI")
        logger.info(f"Session {self.connection_id} closed")

    async def snapshot(self) -> dict:
        """Describe the session for the health endpoint."""
        async with self._lock:
            return {
                "connection_id": self.connection_id,
                "telephony_ready": self._ready,
                "ai_connected": self._ai_ws is not None,
                "stream_sid": self._stream_sid,
                "call_sid": self._call_sid,
                "closed": self._closed,
            }


async def _close_quietly(websocket: Optional[Any], leg: str) -> None:
    if websocket is None:
        return

    # Starlette raises if close is sent after either side already closed
    for attr in ("client_state", "application_state"):
        if getattr(websocket, attr, None) == WebSocketState.DISCONNECTED:
            return

    try:
        await websocket.close()
    except Exception as e:
        logger.warning(f"Error closing {leg} WebSocket: {e}")


class SessionRegistry:
    """Live sessions keyed by connection id."""

    def __init__(self, max_sessions: int = 1):
        self.max_sessions = max_sessions
        self._lock = asyncio.Lock()
        self._sessions: dict[str, CallSession] = {}

    async def open(self, connection_id: Optional[str] = None) -> CallSession:
        """
        Create and register a new session.

        Raises:
            SessionBusyError: if ``max_sessions`` sessions are already live.
        """
        async with self._lock:
            if len(self._sessions) >= self.max_sessions:
                active = ", ".join(self._sessions)
                raise SessionBusyError(f"Session already active: {active}")
            session = CallSession(connection_id)
            self._sessions[session.connection_id] = session
            return session

    async def release(self, session: CallSession) -> None:
        async with self._lock:
            if self._sessions.get(session.connection_id) is session:
                del self._sessions[session.connection_id]

    async def active(self) -> list[CallSession]:
        async with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)
