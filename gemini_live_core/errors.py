"""Client error types for Gemini Live sessions."""

from __future__ import annotations


class LiveClientError(Exception):
    """Base error for Gemini Live client failures."""


class NoCredentialError(LiveClientError):
    """No API key was available when connecting."""


class InvalidAddressError(LiveClientError):
    """The endpoint URL could not be turned into a websocket address."""


class ClosedDuringHandshakeError(LiveClientError):
    """The connection closed before the setup handshake completed."""

    def __init__(self, code: int | None, reason: str) -> None:
        super().__init__(
            f"WebSocket closed during connection attempt. Code: {code}, Reason: {reason}"
        )
        self.code = code
        self.reason = reason


class InvalidToolResponseError(LiveClientError, ValueError):
    """A tool result carried neither an output nor an error."""


class FrameDecodeError(LiveClientError):
    """An inbound frame could not be decoded."""


class LiveStateError(LiveClientError):
    """Illegal connection phase transition."""


class ConfigLoadError(LiveClientError):
    """Error loading a session configuration file."""


class LiveTransportError(LiveClientError):
    """Base error for websocket transport failures."""


class LiveTimeout(LiveTransportError):
    """Timeout while opening the websocket."""


class LiveConnectionError(LiveTransportError):
    """Network connection failed or a frame could not be transmitted."""


class LiveHandshakeError(LiveTransportError):
    """WebSocket opening handshake failed."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class TransportAbsentError(LiveTransportError):
    """A send was attempted on a session that has no transport."""


class TransportNotOpenError(LiveTransportError):
    """A send was attempted on a transport that is not open."""
