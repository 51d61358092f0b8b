"""
OpenAI Realtime API gateway.

Dials the Realtime websocket for an accepted call, configures the session
once for G.711 mu-law in both directions, and hands both legs to the relay.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..utils.config import Settings, get_settings
from .bridge import RelayEngine
from .errors import GatewayError
from .frames import RealtimeEventType
from .session import CallSession

logger = logging.getLogger(__name__)


Dialer = Callable[..., Awaitable[Any]]


class RealtimeGateway:
    """
    Opens the AI leg of a call.

    The session settings (turn detection, audio formats, voice, instructions,
    modalities, temperature) are sent in a single ``session.update`` before
    any audio flows and never change for the rest of the call.
    """

    def __init__(self, settings: Optional[Settings] = None, dial: Optional[Dialer] = None):
        """
        Initialize the gateway.

        Args:
            settings: Application settings (defaults to the cached settings)
            dial: Coroutine used to open the websocket (defaults to websockets.connect)
        """
        self.settings = settings or get_settings()
        self._dial = dial or websockets.connect

    @property
    def realtime_url(self) -> str:
        return self.settings.openai_realtime_url

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.openai_api_key}",
            "OpenAI-Beta": self.settings.openai_beta_header,
        }

    def session_update(self) -> dict:
        """The one-time ``session.update`` configuration message."""
        return {
            "type": RealtimeEventType.SESSION_UPDATE.value,
            "session": {
                "turn_detection": {"type": self.settings.turn_detection},
                "input_audio_format": self.settings.audio_format,
                "output_audio_format": self.settings.audio_format,
                "voice": self.settings.openai_realtime_voice,
                "instructions": self.settings.openai_instructions,
                "modalities": ["text", "audio"],
                "temperature": self.settings.openai_temperature,
            },
        }

    async def open(self, session: CallSession) -> Any:
        """
        Dial the Realtime API, store the AI leg and configure the session.

        Raises:
            GatewayError: if the dial or the configuration write fails.
        """
        logger.info(f"Connecting to OpenAI Realtime API: {self.realtime_url}")
        try:
            ai_ws = await self._dial(self.realtime_url, additional_headers=self.headers)
        except (OSError, TimeoutError, WebSocketException) as e:
            raise GatewayError(f"Error dialing connection: {e}") from e

        logger.info("WS dial connection established.")
        await session.set_ai_leg(ai_ws)

        try:
            await ai_ws.send(json.dumps(self.session_update()))
        except (ConnectionClosed, OSError) as e:
            raise GatewayError(f"Error writing config to connection: {e}") from e

        logger.info(
            f"OpenAI session configured: voice={self.settings.openai_realtime_voice}, "
            f"model={self.settings.openai_realtime_model}, audio={self.settings.audio_format}"
        )
        return ai_ws

    async def connect(self, session: CallSession) -> bool:
        """
        Open the AI leg for ``session`` and relay until the call ends.

        Returns:
            True if the relay ran, False if the telephony leg was not ready
            or the AI leg could not be opened.
        """
        if not await session.is_telephony_ready():
            logger.warning("First connection not established yet")
            return False

        try:
            await self.open(session)
        except GatewayError as e:
            logger.error(str(e))
            return False

        await RelayEngine(session).run()
        return True
