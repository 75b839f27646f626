"""Outbound send surface for a live session."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from .errors import TransportAbsentError, TransportNotOpenError
from .protocol import (
    AUDIO_PCM_MIME,
    IMAGE_JPEG_MIME,
    OutboundCommand,
    SendAudioChunk,
    SendImageFrame,
    SendToolResult,
    SetText,
)
from .state import SessionState

if TYPE_CHECKING:
    from .transport.ws_client import LiveWsClient

_LOGGER = logging.getLogger(__name__)


class OutboundGateway:
    """Public send operations, gated on setup completion.

    Sends issued before the setup handshake completes are dropped with a
    warning. Transmission failures propagate to the caller.
    """

    def __init__(
        self,
        state: SessionState,
        transport: Callable[[], LiveWsClient | None],
        *,
        name: str = "LiveSession",
    ) -> None:
        self._state = state
        self._transport = transport
        self._name = name

    async def send_text(self, text: str, end_of_turn: bool = True) -> None:
        """Send user text.

        Args:
            text: The text to send.
            end_of_turn: If False the model waits for more input before responding.
        """
        await self._send_command(SetText(text, end_of_turn), "text")

    async def send_audio_chunk(self, data: str, mime_type: str = AUDIO_PCM_MIME) -> None:
        """Send a base64 encoded PCM audio chunk."""
        await self._send_command(SendAudioChunk(data, mime_type), "audio chunk")

    async def send_image_frame(self, data: str, mime_type: str = IMAGE_JPEG_MIME) -> None:
        """Send a base64 encoded image frame."""
        await self._send_command(SendImageFrame(data, mime_type), "image frame")

    async def send_tool_result(
        self,
        call_id: str,
        *,
        output: Any = None,
        error: str | None = None,
    ) -> None:
        """Send the result of a tool call.

        Validation happens before the handshake check, so an invalid result is
        rejected even when the send itself would be dropped.

        Args:
            call_id: Identifier from the originating function call.
            output: Tool output; ignored when ``error`` is set.
            error: Error message if the tool failed.

        Raises:
            InvalidToolResponseError: If the id is missing or neither output nor
                error is given.
        """
        command = SendToolResult(call_id, output=output, error=error)
        await self._send_command(command, "tool response")

    async def _send_command(self, command: OutboundCommand, label: str) -> None:
        if not self._state.handshake_complete:
            _LOGGER.warning(
                "[%s] Attempted to send %s before setup completed", self._name, label
            )
            return
        await self.send_frame(command.envelope())
        _LOGGER.debug("[%s] Sent %s", self._name, label)

    async def send_frame(self, envelope: dict[str, Any]) -> None:
        """Serialize and transmit one envelope, bypassing the setup gate.

        Raises:
            TransportAbsentError: If the session has no transport.
            TransportNotOpenError: If the transport exists but is not open.
            LiveConnectionError: If the transport fails to write the frame.
        """
        ws = self._transport()
        if ws is None:
            _LOGGER.error("[%s] WebSocket is null, cannot send message", self._name)
            raise TransportAbsentError(f"[{self._name}] WebSocket is not connected")
        if not ws.is_open:
            _LOGGER.error("[%s] WebSocket is not open, cannot send message", self._name)
            raise TransportNotOpenError(f"[{self._name}] WebSocket connection is not open")
        await ws.send_json(envelope)
