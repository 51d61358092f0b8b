"""
Configuration management using pydantic-settings.

Loads settings from environment variables and .env files.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_INSTRUCTIONS = (
    "You are making a phone call to place an order for a pizza. "
    "You love pineapple but not onions."
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Call placement
    phone_number_to: str = Field(
        ...,
        description="E.164 number the caller dials at startup",
    )
    phone_number_from: str = Field(
        ...,
        description="Twilio number the call is placed from",
    )
    domain: str = Field(
        ...,
        description="Public domain Twilio opens the media stream to (e.g. abc.ngrok.app)",
    )
    place_call_on_startup: bool = Field(
        default=True,
        description="Place the outbound call when the server starts",
    )

    # Twilio Configuration
    twilio_account_sid: str = Field(..., description="Twilio Account SID")
    twilio_auth_token: str = Field(..., description="Twilio Auth Token")

    # OpenAI Configuration
    openai_api_key: str = Field(
        ...,
        description="OpenAI API key for the Realtime API",
    )
    openai_realtime_model: str = Field(
        default="gpt-4o-realtime-preview-2024-12-17",
        description="Model to use for OpenAI Realtime API",
    )
    openai_realtime_base_url: str = Field(
        default="wss://api.openai.com/v1/realtime",
        description="Realtime websocket endpoint (model is appended as a query param)",
    )
    openai_beta_header: str = Field(
        default="realtime=v1",
        description="Value of the OpenAI-Beta protocol-version header",
    )

    # Realtime session (sent once in session.update)
    openai_realtime_voice: str = Field(
        default="echo",
        description="Voice to use for OpenAI Realtime (alloy, echo, shimmer, ...)",
    )
    openai_instructions: str = Field(default=DEFAULT_INSTRUCTIONS)
    openai_temperature: float = Field(default=0.8, ge=0.6, le=1.2)
    audio_format: str = Field(
        default="g711_ulaw",
        description="Input and output audio format. Twilio streams 8kHz mu-law.",
    )
    turn_detection: str = Field(default="server_vad")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")

    @property
    def openai_realtime_url(self) -> str:
        """Get the OpenAI Realtime WebSocket URL."""
        return f"{self.openai_realtime_base_url}?model={self.openai_realtime_model}"

    @property
    def public_host(self) -> str:
        """The bare public host, whatever form DOMAIN was given in."""
        host = self.domain.strip()
        for scheme in ("https://", "http://", "wss://", "ws://"):
            if host.startswith(scheme):
                host = host[len(scheme):]
                break
        return host.rstrip("/")

    @property
    def twilio_stream_url(self) -> str:
        """Get the Twilio Media Stream WebSocket URL."""
        return f"wss://{self.public_host}/ws"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to avoid re-reading environment on every call.
    """
    return Settings()
