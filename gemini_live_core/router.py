"""Inbound frame classification and event dispatch."""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from .errors import FrameDecodeError, LiveStateError
from .events import EventBus, LiveEvent
from .protocol import (
    InlineDataPart,
    Part,
    ServerContent,
    SetupComplete,
    TextPart,
    ToolCall,
    ToolCallCancellation,
    Unrecognized,
    decode_frame,
)
from .state import SessionState

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartitionedTurn:
    """Model turn parts split into disjoint, order-preserving groups."""

    text: tuple[TextPart, ...]
    audio: tuple[InlineDataPart, ...]
    other: tuple[Part, ...]


def partition_parts(parts: Sequence[Part]) -> PartitionedTurn:
    """Split parts into text, audio and everything else."""
    text: list[TextPart] = []
    audio: list[InlineDataPart] = []
    other: list[Part] = []
    for part in parts:
        if isinstance(part, TextPart):
            text.append(part)
        elif isinstance(part, InlineDataPart) and part.is_audio:
            audio.append(part)
        else:
            other.append(part)
    return PartitionedTurn(tuple(text), tuple(audio), tuple(other))


class MessageRouter:
    """Decode inbound payloads and republish them on the event bus.

    Frames are handled synchronously in arrival order. A malformed frame is
    logged and dropped; it never reaches the caller.
    """

    def __init__(
        self,
        bus: EventBus,
        state: SessionState,
        *,
        name: str = "LiveSession",
        on_setup_complete: Callable[[], None] | None = None,
    ) -> None:
        self._bus = bus
        self._state = state
        self._name = name
        self._on_setup_complete = on_setup_complete

    def on_inbound(self, raw: Any) -> None:
        """Handle one payload received from the transport."""
        if not isinstance(raw, (bytes, bytearray, memoryview)):
            _LOGGER.warning(
                "[%s] Non-binary message received, ignoring (%s)",
                self._name,
                type(raw).__name__,
            )
            return

        try:
            frame = decode_frame(raw)
        except FrameDecodeError as err:
            _LOGGER.warning("[%s] Dropping malformed frame: %s", self._name, err)
            return
        except Exception:
            _LOGGER.exception("[%s] Unexpected error decoding frame, dropping", self._name)
            return

        if isinstance(frame, ToolCall):
            _LOGGER.debug("[%s] Received tool call (%d calls)", self._name, len(frame.calls))
            self._bus.publish(LiveEvent.TOOL_CALL, list(frame.calls))
        elif isinstance(frame, SetupComplete):
            self._handle_setup_complete()
        elif isinstance(frame, ToolCallCancellation):
            _LOGGER.debug("[%s] Received tool call cancellation", self._name)
            self._bus.publish(LiveEvent.TOOL_CALL_CANCELLATION, list(frame.ids))
        elif isinstance(frame, ServerContent):
            self._handle_server_content(frame)
        elif isinstance(frame, Unrecognized):
            _LOGGER.debug("[%s] Received unmatched message: %s", self._name, frame.raw)
            self._bus.publish(LiveEvent.UNRECOGNIZED, frame.raw)

    def _handle_setup_complete(self) -> None:
        if self._state.handshake_complete:
            _LOGGER.debug("[%s] Duplicate setupComplete ignored", self._name)
            return
        try:
            self._state.complete_handshake()
        except LiveStateError as err:
            _LOGGER.warning("[%s] Unexpected setupComplete: %s", self._name, err)
            return

        _LOGGER.info("[%s] Setup complete", self._name)
        if self._on_setup_complete is not None:
            self._on_setup_complete()
        self._bus.publish(LiveEvent.SETUP_COMPLETE)

    def _handle_server_content(self, content: ServerContent) -> None:
        if content.interrupted:
            _LOGGER.debug("[%s] Model turn interrupted", self._name)
            self._bus.publish(LiveEvent.INTERRUPTED)
            return

        if content.turn_complete:
            _LOGGER.debug("[%s] Model turn complete", self._name)
            self._bus.publish(LiveEvent.TURN_COMPLETE)

        if content.model_turn is None:
            return

        turn = partition_parts(content.model_turn)

        for part in turn.text:
            if part.text:
                self._bus.publish(LiveEvent.TEXT, part.text)

        for part in turn.audio:
            if not part.data:
                continue
            try:
                chunk = base64.b64decode(part.data, validate=True)
            except (binascii.Error, ValueError) as err:
                _LOGGER.warning("[%s] Skipping undecodable audio chunk: %s", self._name, err)
                continue
            self._bus.publish(LiveEvent.AUDIO, chunk)

        if turn.other:
            _LOGGER.debug("[%s] Publishing %d other parts", self._name, len(turn.other))
            self._bus.publish(LiveEvent.CONTENT, list(turn.other))
