"""
FastAPI application for the realtime caller.

Provides:
- Outbound call placement at startup
- WebSocket endpoint for the Twilio Media Stream of that call
- Placeholder home page and health check
"""

# Configure logging before the websocket and HTTP libraries are imported
import logging

logging.getLogger("websockets").setLevel(logging.WARNING)
logging.getLogger("websockets.client").setLevel(logging.WARNING)
logging.getLogger("websockets.server").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("twilio.http_client").setLevel(logging.WARNING)

import asyncio
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse

from ..utils.config import get_settings
from .dialer import CallInitiator
from .errors import SessionBusyError
from .openai_realtime import RealtimeGateway
from .session import SessionRegistry

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Close code sent to a media stream that arrives while another call is live
TRY_AGAIN_LATER = 1013

registry = SessionRegistry(max_sessions=1)


def get_registry() -> SessionRegistry:
    return registry


def get_gateway() -> RealtimeGateway:
    return RealtimeGateway(get_settings())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Place the outbound call, then serve its media stream."""
    current = get_settings()
    logger.info("realtime-caller starting")
    logger.info(f"Media stream URL: {current.twilio_stream_url}")

    if current.place_call_on_startup:
        initiator = CallInitiator(current)
        # A failed call aborts startup
        await asyncio.to_thread(initiator.place_call, current.phone_number_to)
    else:
        logger.info("Outbound call disabled; waiting for a media stream")

    yield
    logger.info("Shutting down realtime caller...")


app = FastAPI(
    title="Realtime Caller",
    description="Relays a Twilio call's audio to the OpenAI Realtime API",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/", response_class=PlainTextResponse)
async def home_page():
    logger.info("hp endpoint hit")
    return "Home Page"


@app.get("/health")
async def health_check(registry: SessionRegistry = Depends(get_registry)):
    """Service status and the live session, if any."""
    current = get_settings()
    sessions = await registry.active()
    return {
        "status": "healthy",
        "active_session": await sessions[0].snapshot() if sessions else None,
        "config": {
            "realtime_model": current.openai_realtime_model,
            "voice": current.openai_realtime_voice,
            "stream_url": current.twilio_stream_url,
        },
    }


@app.websocket("/ws")
async def media_stream(
    websocket: WebSocket,
    registry: SessionRegistry = Depends(get_registry),
    gateway: RealtimeGateway = Depends(get_gateway),
):
    """
    WebSocket endpoint for the Twilio Media Stream.

    Accepts the telephony leg, opens the OpenAI leg and relays until either
    side hangs up.
    """
    logger.info("ws endpoint hit")
    try:
        await websocket.accept()
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.error(f"Error upgrading first connection: {e!r}")
        return

    try:
        session = await registry.open()
    except SessionBusyError as e:
        logger.warning(f"Rejecting media stream: {e}")
        await websocket.close(code=TRY_AGAIN_LATER, reason="call already in progress")
        return

    try:
        await session.mark_telephony_ready(websocket)
        logger.info(f"First connection established ({session.connection_id}).")
        await gateway.connect(session)
    finally:
        await session.close()
        await registry.release(session)
        logger.info(f"Session {session.connection_id} released")


# =============================================================================
# Main Entry Point
# =============================================================================


def main():
    """Run the FastAPI server."""
    import uvicorn

    uvicorn.run(
        "src.relay.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
