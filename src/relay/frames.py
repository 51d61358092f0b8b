"""
Wire schemas for the two legs of the relay and the translations between them.

Twilio Media Streams and the OpenAI Realtime API both carry base64 G.711
mu-law audio, so translating a frame only means moving the payload from one
JSON envelope into the other. Nothing here holds state.
"""

from enum import Enum
from typing import Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import FrameError


# ============================================================================
# Event tags
# ============================================================================


class TwilioEventType(str, Enum):
    """Twilio Media Streams event tags."""
    CONNECTED = "connected"
    START = "start"
    MEDIA = "media"
    MARK = "mark"
    DTMF = "dtmf"
    STOP = "stop"


class RealtimeEventType(str, Enum):
    """OpenAI Realtime API event types the relay knows about."""
    # Client events
    SESSION_UPDATE = "session.update"
    INPUT_AUDIO_BUFFER_APPEND = "input_audio_buffer.append"

    # Server events
    SESSION_CREATED = "session.created"
    SESSION_UPDATED = "session.updated"
    RESPONSE_AUDIO_DELTA = "response.audio.delta"
    RESPONSE_AUDIO_DONE = "response.audio.done"
    RESPONSE_DONE = "response.done"
    ERROR = "error"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Twilio -> relay
# ============================================================================


class TwilioEvent(_WireModel):
    """Envelope of every message Twilio sends on a media stream."""
    event: str = ""
    stream_sid: str = Field(default="", alias="streamSid")


class StreamStart(_WireModel):
    stream_sid: str = Field(default="", alias="streamSid")
    call_sid: str = Field(default="", alias="callSid")
    account_sid: str = Field(default="", alias="accountSid")


class TwilioStartEvent(TwilioEvent):
    start: StreamStart = Field(default_factory=StreamStart)

    @property
    def resolved_stream_sid(self) -> str:
        """Top-level streamSid, falling back to the one inside ``start``."""
        return self.stream_sid or self.start.stream_sid


class MediaChunk(_WireModel):
    track: str = ""
    chunk: str = ""
    timestamp: str = ""
    payload: str = ""


class TwilioMediaEvent(TwilioEvent):
    sequence_number: str = Field(default="", alias="sequenceNumber")
    media: MediaChunk = Field(default_factory=MediaChunk)


# ============================================================================
# OpenAI -> relay
# ============================================================================


class RealtimeEvent(_WireModel):
    """Envelope of every server event from the Realtime API."""
    type: str = ""

    @property
    def event_type(self) -> Optional[RealtimeEventType]:
        """Get the typed event type if recognized."""
        try:
            return RealtimeEventType(self.type)
        except ValueError:
            return None


class RealtimeAudioDelta(RealtimeEvent):
    delta: str = ""


# ============================================================================
# relay -> either leg
# ============================================================================


class AudioAppend(_WireModel):
    type: Literal["input_audio_buffer.append"] = "input_audio_buffer.append"
    audio: str


class MediaPayload(_WireModel):
    payload: str


class TwilioMediaMessage(_WireModel):
    event: Literal["media"] = "media"
    stream_sid: str = Field(alias="streamSid")
    media: MediaPayload


# ============================================================================
# Parsing and translation
# ============================================================================


ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse(model: type[ModelT], raw: str | bytes) -> ModelT:
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        raise FrameError(
            f"Invalid JSON for {model.__name__}: {e.error_count()} error(s)", raw=raw
        ) from e


def parse_twilio_event(raw: str | bytes) -> TwilioEvent:
    return _parse(TwilioEvent, raw)


def parse_twilio_start(raw: str | bytes) -> TwilioStartEvent:
    return _parse(TwilioStartEvent, raw)


def parse_twilio_media(raw: str | bytes) -> TwilioMediaEvent:
    return _parse(TwilioMediaEvent, raw)


def parse_realtime_event(raw: str | bytes) -> RealtimeEvent:
    return _parse(RealtimeEvent, raw)


def parse_audio_delta(raw: str | bytes) -> RealtimeAudioDelta:
    return _parse(RealtimeAudioDelta, raw)


def audio_append_frame(payload: str) -> str:
    """
    Build the ``input_audio_buffer.append`` frame for a Twilio media payload.

    The payload is carried over verbatim.
    """
    return AudioAppend(audio=payload).model_dump_json(by_alias=True)


def twilio_media_frame(stream_sid: str, payload: str) -> str:
    """Build the Twilio ``media`` frame that plays ``payload`` on the call."""
    message = TwilioMediaMessage(
        stream_sid=stream_sid,
        media=MediaPayload(payload=payload),
    )
    return message.model_dump_json(by_alias=True)
