"""Transport layer for Gemini Live sessions.

This package contains the websocket IO; protocol framing lives in
``gemini_live_core.protocol``.

Components:
- ws: URL building and websocket connection
- ws_client: websocket send and normalized message iteration
"""

from .ws import (
    DEFAULT_KEY_PARAM,
    DEFAULT_LIVE_URL,
    build_live_url,
    connect_websocket,
    redact_url,
)
from .ws_client import LiveWsClient, LiveWsMessage, LiveWsMessageType

__all__ = [
    "DEFAULT_KEY_PARAM",
    "DEFAULT_LIVE_URL",
    "LiveWsClient",
    "LiveWsMessage",
    "LiveWsMessageType",
    "build_live_url",
    "connect_websocket",
    "redact_url",
]
