"""
Realtime caller: relays a phone call through an AI voice agent.

This module provides real-time voice interaction using:
- Twilio Media Streams for telephony
- OpenAI Realtime API for speech-to-speech processing
"""

from .app import app, main
from .bridge import RelayEngine
from .openai_realtime import RealtimeGateway
from .session import CallSession, SessionRegistry

__all__ = ["app", "main", "RelayEngine", "RealtimeGateway", "CallSession", "SessionRegistry"]
