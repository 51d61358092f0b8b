"""
Relay engine: pumps audio between Twilio Media Streams and OpenAI Realtime.

Two pumps run concurrently, one per direction. Each reads a frame, translates
its envelope and writes it to the other leg. The first pump to stop closes
both legs, which makes the other pump's pending read fail, and the engine
returns once both have exited.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from fastapi import WebSocketDisconnect
from websockets.exceptions import ConnectionClosed

from . import frames
from .errors import FrameError, RelayError
from .frames import RealtimeEventType, TwilioEventType
from .session import CallSession

logger = logging.getLogger(__name__)


# Errors that mean a leg is gone. Starlette raises RuntimeError when a closed
# socket is read from or written to.
TRANSPORT_ERRORS = (WebSocketDisconnect, ConnectionClosed, RuntimeError, OSError)


async def _receive_frame(websocket: Any) -> str | bytes:
    """Next text or binary frame from a Starlette websocket."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
    if message.get("text") is not None:
        return message["text"]
    return message.get("bytes") or b""


@dataclass
class RelayStats:
    """Frame counters for one relayed call."""
    frames_to_ai: int = 0
    frames_to_telephony: int = 0
    telephony_events_observed: int = 0
    ai_events_observed: int = 0


class RelayEngine:
    """
    Bridges one call's Twilio socket and OpenAI Realtime socket.

    The Twilio leg is a FastAPI ``WebSocket`` (``receive``/``send_text``)
    and the OpenAI leg a ``websockets`` client connection (``recv``/``send``).
    """

    def __init__(self, session: CallSession):
        self.session = session
        self.stats = RelayStats()

    async def run(self) -> None:
        """Relay frames until either leg stops, then tear the session down."""
        telephony_ws, ai_ws = await self.session.legs()
        if telephony_ws is None or ai_ws is None:
            raise RelayError("Relay started before both legs were connected")

        logger.info(f"Relay started for session {self.session.connection_id}")

        tasks = [
            asyncio.create_task(
                self._telephony_to_ai(telephony_ws, ai_ws), name="telephony->ai"
            ),
            asyncio.create_task(
                self._ai_to_telephony(ai_ws, telephony_ws), name="ai->telephony"
            ),
        ]

        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            await self.session.close()
            # A pump blocked on a stalled peer may not notice the close
            for task in tasks:
                if not task.done():
                    task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)

        for task, result in zip(tasks, results):
            if isinstance(result, Exception):
                logger.error(f"Pump {task.get_name()} failed: {result!r}")

        logger.info(
            f"Connections closed. Relayed {self.stats.frames_to_ai} frames to AI, "
            f"{self.stats.frames_to_telephony} frames to telephony"
        )

    async def _telephony_to_ai(self, telephony_ws: Any, ai_ws: Any) -> None:
        """Forward audio from Twilio to OpenAI."""
        try:
            while True:
                try:
                    message = await _receive_frame(telephony_ws)
                except TRANSPORT_ERRORS as e:
                    logger.info(f"Error reading from telephony leg: {e!r}")
                    return

                try:
                    await self._handle_telephony_frame(message, ai_ws)
                except FrameError as e:
                    logger.error(f"Invalid JSON from telephony leg: {e}")
                    return
                except TRANSPORT_ERRORS as e:
                    logger.error(f"Error writing to AI leg: {e!r}")
                    return
        finally:
            await self.session.close()

    async def _handle_telephony_frame(self, message: str | bytes, ai_ws: Any) -> None:
        envelope = frames.parse_twilio_event(message)

        if envelope.event == TwilioEventType.MEDIA:
            media_event = frames.parse_twilio_media(message)
            await ai_ws.send(frames.audio_append_frame(media_event.media.payload))
            self.stats.frames_to_ai += 1

        elif envelope.event == TwilioEventType.START:
            start_event = frames.parse_twilio_start(message)
            stream_sid = start_event.resolved_stream_sid
            recorded = await self.session.record_stream_start(
                stream_sid, start_event.start.call_sid or None
            )
            self.stats.telephony_events_observed += 1
            if recorded:
                logger.info(f"Incoming stream started {stream_sid}")
            else:
                logger.warning(f"Ignoring repeated start event for stream {stream_sid}")

        else:
            self.stats.telephony_events_observed += 1
            logger.info(f"msg from twilio: {envelope.event or 'unknown'}")
            logger.debug(message)

    async def _ai_to_telephony(self, ai_ws: Any, telephony_ws: Any) -> None:
        """Forward audio from OpenAI to Twilio."""
        try:
            while True:
                try:
                    message = await ai_ws.recv()
                except TRANSPORT_ERRORS as e:
                    logger.info(f"Error reading from AI leg: {e!r}")
                    return

                try:
                    await self._handle_ai_frame(message, telephony_ws)
                except FrameError as e:
                    logger.error(f"Invalid JSON from AI leg: {e}")
                    return
                except TRANSPORT_ERRORS as e:
                    logger.error(f"Error writing to telephony leg: {e!r}")
                    return
        finally:
            await self.session.close()

    async def _handle_ai_frame(self, message: str | bytes, telephony_ws: Any) -> None:
        event = frames.parse_realtime_event(message)

        if event.type == RealtimeEventType.RESPONSE_AUDIO_DELTA:
            delta_event = frames.parse_audio_delta(message)
            stream_sid = await self.session.stream_sid()
            await telephony_ws.send_text(frames.twilio_media_frame(stream_sid, delta_event.delta))
            self.stats.frames_to_telephony += 1
            return

        self.stats.ai_events_observed += 1
        if event.event_type == RealtimeEventType.ERROR:
            logger.warning(f"OpenAI error event: {message!r}")
        else:
            logger.info(f"msg from openai: {event.type or 'unknown'}")
            logger.debug(message)
