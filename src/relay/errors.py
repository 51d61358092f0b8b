"""Exceptions raised while placing and relaying a call."""


class RelayError(Exception):
    default_detail: str = "Relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class FrameError(RelayError):
    """A frame on either leg was not valid JSON or did not match its schema."""

    default_detail = "Invalid JSON"

    def __init__(self, detail: str | None = None, raw: str | bytes | None = None) -> None:
        super().__init__(detail)
        self.raw = raw


class SessionBusyError(RelayError):
    default_detail = "A call session is already active"


class GatewayError(RelayError):
    default_detail = "Could not establish the realtime connection"


class CallPlacementError(RelayError):
    default_detail = "Could not place the outbound call"
