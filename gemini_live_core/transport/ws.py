"""WebSocket helpers for the Gemini Live endpoint."""

from __future__ import annotations

import asyncio
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidStatus,
    InvalidURI,
    WebSocketException,
)

from ..errors import (
    InvalidAddressError,
    LiveConnectionError,
    LiveHandshakeError,
    LiveTimeout,
)

DEFAULT_LIVE_URL = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1alpha.GenerativeService.BidiGenerateContent"
)
DEFAULT_KEY_PARAM = "key"


def build_live_url(base_url: str, credential: str, *, param: str = DEFAULT_KEY_PARAM) -> str:
    """Embed the credential into the endpoint URL as a query parameter.

    Existing query parameters are kept; an existing ``param`` is replaced.

    Raises:
        InvalidAddressError: If ``base_url`` is not a ws:// or wss:// URL with a host.
    """
    try:
        parts = urlsplit(base_url)
        host = parts.hostname
    except ValueError as err:
        raise InvalidAddressError(f"Invalid WebSocket URL: {base_url!r}") from err

    if parts.scheme not in ("ws", "wss") or not host:
        raise InvalidAddressError(f"Invalid WebSocket URL: {base_url!r}")

    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != param]
    query.append((param, credential))
    return urlunsplit(parts._replace(query=urlencode(query)))


def redact_url(url: str) -> str:
    """Strip the query string so credentials never reach the logs."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<invalid url>"
    if not parts.query:
        return url
    return urlunsplit(parts._replace(query="<redacted>"))


async def connect_websocket(
    url: str,
    *,
    ping_interval: float | None = 20,
    timeout: float | None = None,
) -> ClientConnection:
    """Open a websocket to ``url``.

    Uses the websockets library which properly implements RFC 6455 frame masking.
    No deadline applies unless ``timeout`` is given.

    Args:
        url: Fully built endpoint URL, credential included
        ping_interval: Interval for ping frames
        timeout: Optional connection timeout
    """
    try:
        return await asyncio.wait_for(
            websockets.connect(
                url,
                ping_interval=ping_interval,
                open_timeout=None,
                close_timeout=5,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise LiveTimeout("WebSocket connection timed out") from err
    except InvalidStatus as err:
        status = err.response.status_code
        raise LiveHandshakeError(
            f"WebSocket handshake rejected with HTTP {status}", status=status
        ) from err
    except (InvalidHandshake, InvalidURI) as err:
        raise LiveHandshakeError("WebSocket handshake failed") from err
    except (OSError, WebSocketException) as err:
        raise LiveConnectionError("WebSocket connection failed") from err
