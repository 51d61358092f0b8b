"""
Outbound call placement through the Twilio REST API.

The call is created with inline TwiML telling Twilio to open a bidirectional
Media Stream back to this server's ``/ws`` endpoint once the callee answers.
"""

import logging
from typing import Any, Optional
from xml.sax.saxutils import escape

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from ..utils.config import Settings, get_settings
from .errors import CallPlacementError

logger = logging.getLogger(__name__)


def build_stream_twiml(stream_url: str) -> str:
    """TwiML that connects the answered call to a Media Stream at ``stream_url``."""
    url = escape(stream_url, {'"': "&quot;"})
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url=\"{url}\" />"
        "</Connect>"
        "</Response>"
    )


class CallInitiator:
    """Places the outbound call that starts a relayed session."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Any] = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = Client(
                self.settings.twilio_account_sid,
                self.settings.twilio_auth_token,
            )
        return self._client

    def place_call(self, to_number: Optional[str] = None) -> Optional[str]:
        """
        Ask Twilio to dial ``to_number`` and stream the call back to us.

        This blocks on the REST request; run it in a worker thread from
        async code.

        Args:
            to_number: Destination number (defaults to PHONE_NUMBER_TO)

        Returns:
            The Call SID assigned by Twilio.

        Raises:
            CallPlacementError: if Twilio rejects the request or is unreachable.
        """
        to_number = to_number or self.settings.phone_number_to
        twiml = build_stream_twiml(self.settings.twilio_stream_url)

        try:
            call = self.client.calls.create(
                to=to_number,
                from_=self.settings.phone_number_from,
                twiml=twiml,
            )
        except (TwilioException, OSError) as e:
            logger.error(f"Failed to place call to {to_number}: {e}")
            raise CallPlacementError(str(e)) from e

        if call.sid:
            logger.info(f"Placed call {call.sid} to {to_number}")
        else:
            logger.warning(f"Twilio accepted the call to {to_number} but returned no SID")
        return call.sid
