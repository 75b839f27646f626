"""WebSocket client wrapper for Gemini Live."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK
from websockets.protocol import State

from ..errors import LiveConnectionError
from ..protocol import encode_frame
from .ws import connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

# Reported when the peer vanished without a close frame
ABNORMAL_CLOSURE = 1006


class LiveWsMessageType(Enum):
    """Normalized WebSocket message types."""

    BINARY = "binary"
    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class LiveWsMessage:
    """Normalized WebSocket message payload."""

    type: LiveWsMessageType
    data: bytes | str | None = None
    close_code: int | None = None
    close_reason: str = ""
    was_clean: bool = False
    error: BaseException | None = None


class LiveWsClient:
    """Wrapper around websockets library for Gemini Live."""

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None

    async def connect(
        self,
        url: str,
        *,
        ping_interval: float | None = 20,
        timeout: float | None = None,
    ) -> None:
        """Connect to the live endpoint."""
        self._ws = await connect_websocket(
            url,
            ping_interval=ping_interval,
            timeout=timeout,
        )

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN

    async def close(self) -> None:
        """Close the websocket connection."""
        if self._ws is not None:
            await self._ws.close()

    async def send_json(self, payload: dict[str, Any]) -> None:
        """Send a JSON payload as a text frame.

        Raises:
            LiveConnectionError: If not connected or the frame cannot be written
        """
        if self._ws is None:
            raise LiveConnectionError("WebSocket is not connected")
        try:
            await self._ws.send(encode_frame(payload))
        except ConnectionClosed as err:
            raise LiveConnectionError(f"WebSocket closed while sending: {err}") from err
        except OSError as err:
            raise LiveConnectionError("WebSocket send failed") from err

    def __aiter__(self) -> AsyncIterator[LiveWsMessage]:
        if self._ws is None:
            raise LiveConnectionError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[LiveWsMessage]:
        if self._ws is None:
            raise LiveConnectionError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                yield self._normalize_message(msg)
        except ConnectionClosed as err:
            code, reason = self._close_details(err)
            yield LiveWsMessage(
                type=LiveWsMessageType.CLOSED,
                close_code=code,
                close_reason=reason,
                was_clean=isinstance(err, ConnectionClosedOK),
            )
        except Exception as err:
            yield LiveWsMessage(type=LiveWsMessageType.ERROR, error=err)
        else:
            # Normal iteration completion means the peer closed gracefully.
            yield LiveWsMessage(
                type=LiveWsMessageType.CLOSED,
                close_code=getattr(self._ws, "close_code", None),
                close_reason=getattr(self._ws, "close_reason", None) or "",
                was_clean=True,
            )

    @staticmethod
    def _normalize_message(msg: Any) -> LiveWsMessage:
        """Normalize raw frames; anything that is not bytes is passed on as text."""
        if isinstance(msg, (bytes, bytearray, memoryview)):
            return LiveWsMessage(LiveWsMessageType.BINARY, bytes(msg))
        if isinstance(msg, str):
            return LiveWsMessage(LiveWsMessageType.TEXT, msg)
        return LiveWsMessage(LiveWsMessageType.TEXT, str(msg))

    @staticmethod
    def _close_details(err: ConnectionClosed) -> tuple[int, str]:
        """Extract the close code and reason received from the peer."""
        if err.rcvd is not None:
            return err.rcvd.code, err.rcvd.reason
        return ABNORMAL_CLOSURE, ""
