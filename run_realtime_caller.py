#!/usr/bin/env python3
"""
Run script for the realtime caller.

Usage:
    python run_realtime_caller.py

Make sure to:
1. Copy .env.example to .env and fill in your API keys and phone numbers
2. Start ngrok: ngrok http 8080
3. Set DOMAIN in .env to the ngrok host (without scheme)

On startup the server places a call to PHONE_NUMBER_TO. When it is answered,
Twilio opens a Media Stream to wss://{DOMAIN}/ws and the call audio is relayed
to the OpenAI Realtime API.
"""

import logging

# Configure logging VERY early, before any other imports that might use it
logging.getLogger("websockets").setLevel(logging.WARNING)
logging.getLogger("websockets.client").setLevel(logging.WARNING)
logging.getLogger("websockets.server").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("twilio.http_client").setLevel(logging.WARNING)

from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.table import Table

# Load environment variables
load_dotenv()

console = Console()


def print_banner(settings) -> None:
    table = Table(title="realtime-caller", box=box.ROUNDED, header_style="bold cyan", show_header=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("Server", f"http://{settings.host}:{settings.port}")
    table.add_row("Media Stream", settings.twilio_stream_url)
    table.add_row("Calling", f"{settings.phone_number_from} -> {settings.phone_number_to}")
    table.add_row("Place call on startup", str(settings.place_call_on_startup))
    table.add_row("OpenAI Model", settings.openai_realtime_model)
    table.add_row("Voice", settings.openai_realtime_voice)

    console.print(table)


def main():
    """Print the banner and run the realtime caller server."""
    from src.relay.app import main as run_server
    from src.utils.config import get_settings

    print_banner(get_settings())
    run_server()


if __name__ == "__main__":
    main()
