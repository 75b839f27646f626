"""Frame codec for the Gemini Live bidirectional streaming protocol.

Outbound commands render JSON envelopes; inbound binary payloads decode into
frozen frame dataclasses. Unknown optional fields are ignored.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .errors import FrameDecodeError, InvalidToolResponseError

if TYPE_CHECKING:
    from .config import LiveConfig

AUDIO_PCM_MIME = "audio/pcm"
IMAGE_JPEG_MIME = "image/jpeg"

# Policy violation plus the backend's custom token-rejection codes.
AUTH_CLOSE_CODES: frozenset[int] = frozenset({1008, 4001, 4003})
AUTH_HTTP_STATUSES: frozenset[int] = frozenset({401, 403})

_AUTH_REASON_RE = re.compile(r"auth|token|key", re.IGNORECASE)


def is_auth_failure(code: int | None, reason: str | None) -> bool:
    """Return True when a close looks like a rejected credential."""
    if code is not None and code in AUTH_CLOSE_CODES:
        return True
    return bool(reason) and _AUTH_REASON_RE.search(reason) is not None


# -----------------------------------------------------------------------------
# Outbound
# -----------------------------------------------------------------------------


def build_setup(config: LiveConfig) -> dict[str, Any]:
    """Construct the setup frame; always the first frame on a connection."""
    return {"setup": config.to_setup()}


def build_client_content(text: str, *, end_of_turn: bool = True) -> dict[str, Any]:
    """Construct a user text turn.

    Args:
        text: Text to send.
        end_of_turn: When False the model waits for more input before replying.
    """
    return {
        "clientContent": {
            "turns": [{"role": "user", "parts": {"text": text}}],
            "turnComplete": end_of_turn,
        }
    }


def build_realtime_input(data: str, mime_type: str) -> dict[str, Any]:
    """Construct a realtime media chunk (audio and images share the shape)."""
    return {"realtimeInput": {"mediaChunks": [{"mimeType": mime_type, "data": data}]}}


def build_tool_response(
    call_id: str,
    *,
    output: Any = None,
    error: str | None = None,
) -> dict[str, Any]:
    """Construct a tool response frame for a single function call.

    A populated ``error`` takes precedence over ``output``.

    Raises:
        InvalidToolResponseError: If the id is missing, or neither output nor
            error is provided.
    """
    if not call_id:
        raise InvalidToolResponseError("Tool response must include an id")

    if error:
        response: dict[str, Any] = {"error": error}
    elif output is None:
        raise InvalidToolResponseError(
            "Tool response must include an output when no error is provided"
        )
    else:
        response = {"output": output}

    return {"toolResponse": {"functionResponses": [{"response": response, "id": call_id}]}}


@dataclass(frozen=True)
class SetText:
    """User text, optionally leaving the turn open."""

    text: str
    end_of_turn: bool = True

    def envelope(self) -> dict[str, Any]:
        return build_client_content(self.text, end_of_turn=self.end_of_turn)


@dataclass(frozen=True)
class SendAudioChunk:
    """Base64 PCM audio chunk."""

    data: str
    mime_type: str = AUDIO_PCM_MIME

    def envelope(self) -> dict[str, Any]:
        return build_realtime_input(self.data, self.mime_type)


@dataclass(frozen=True)
class SendImageFrame:
    """Base64 encoded image frame."""

    data: str
    mime_type: str = IMAGE_JPEG_MIME

    def envelope(self) -> dict[str, Any]:
        return build_realtime_input(self.data, self.mime_type)


@dataclass(frozen=True)
class SendToolResult:
    """Result of a tool call, validated on construction."""

    id: str
    output: Any = None
    error: str | None = None

    def __post_init__(self) -> None:
        build_tool_response(self.id, output=self.output, error=self.error)

    def envelope(self) -> dict[str, Any]:
        return build_tool_response(self.id, output=self.output, error=self.error)


OutboundCommand = SetText | SendAudioChunk | SendImageFrame | SendToolResult


def encode_frame(envelope: Mapping[str, Any]) -> str:
    """Serialize an envelope to wire text."""
    return json.dumps(envelope)


# -----------------------------------------------------------------------------
# Inbound
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class InlineDataPart:
    mime_type: str
    data: str

    @property
    def is_audio(self) -> bool:
        return self.mime_type.startswith(AUDIO_PCM_MIME)


@dataclass(frozen=True)
class UnknownPart:
    """Any part the codec does not model (function calls, executable code...)."""

    raw: dict[str, Any] = field(default_factory=lambda: {})


Part = TextPart | InlineDataPart | UnknownPart


@dataclass(frozen=True)
class FunctionCall:
    id: str
    name: str
    args: dict[str, Any] = field(default_factory=lambda: {})


@dataclass(frozen=True)
class SetupComplete:
    """Backend accepted the setup frame."""


@dataclass(frozen=True)
class ToolCall:
    calls: tuple[FunctionCall, ...]


@dataclass(frozen=True)
class ToolCallCancellation:
    ids: tuple[str, ...]


@dataclass(frozen=True)
class ServerContent:
    turn_complete: bool = False
    interrupted: bool = False
    model_turn: tuple[Part, ...] | None = None


@dataclass(frozen=True)
class Unrecognized:
    raw: dict[str, Any]


InboundFrame = SetupComplete | ToolCall | ToolCallCancellation | ServerContent | Unrecognized


def _require_mapping(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise FrameDecodeError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _decode_part(raw: Any) -> Part:
    part = _require_mapping(raw, "modelTurn part")
    text = part.get("text")
    if isinstance(text, str):
        return TextPart(text)

    inline = part.get("inlineData")
    if isinstance(inline, dict):
        mime_type = inline.get("mimeType")
        data = inline.get("data")
        if isinstance(mime_type, str) and isinstance(data, str):
            return InlineDataPart(mime_type=mime_type, data=data)

    return UnknownPart(part)


def _decode_tool_call(raw: Any) -> ToolCall:
    body = _require_mapping(raw, "toolCall")
    calls_raw = body.get("functionCalls", [])
    if not isinstance(calls_raw, list):
        raise FrameDecodeError("toolCall.functionCalls must be a list")

    calls: list[FunctionCall] = []
    for call in calls_raw:
        call = _require_mapping(call, "functionCall")
        args = call.get("args") or {}
        calls.append(
            FunctionCall(
                id=str(call.get("id", "")),
                name=str(call.get("name", "")),
                args=_require_mapping(args, "functionCall.args"),
            )
        )
    return ToolCall(tuple(calls))


def _decode_cancellation(raw: Any) -> ToolCallCancellation:
    body = _require_mapping(raw, "toolCallCancellation")
    ids = body.get("ids", [])
    if not isinstance(ids, list):
        raise FrameDecodeError("toolCallCancellation.ids must be a list")
    return ToolCallCancellation(tuple(str(call_id) for call_id in ids))


def _decode_server_content(raw: Any) -> ServerContent:
    body = _require_mapping(raw, "serverContent")

    model_turn: tuple[Part, ...] | None = None
    if (turn := body.get("modelTurn")) is not None:
        turn = _require_mapping(turn, "modelTurn")
        parts = turn.get("parts", [])
        if not isinstance(parts, list):
            raise FrameDecodeError("modelTurn.parts must be a list")
        model_turn = tuple(_decode_part(part) for part in parts)

    return ServerContent(
        turn_complete=bool(body.get("turnComplete", False)),
        interrupted=bool(body.get("interrupted", False)),
        model_turn=model_turn,
    )


def decode_frame(payload: bytes | bytearray | memoryview) -> InboundFrame:
    """Decode a binary websocket payload into a typed inbound frame.

    Args:
        payload: UTF-8 encoded JSON object.

    Returns:
        The decoded frame; unknown top-level shapes become ``Unrecognized``.

    Raises:
        FrameDecodeError: If the payload is not UTF-8 JSON, nests too deeply,
            or a known key has a malformed body.
    """
    try:
        message = json.loads(bytes(payload).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as err:
        raise FrameDecodeError(f"Inbound payload is not JSON: {err}") from err

    message = _require_mapping(message, "Inbound frame")

    if "toolCall" in message:
        return _decode_tool_call(message["toolCall"])
    if message.get("setupComplete") not in (None, False):
        return SetupComplete()
    if "toolCallCancellation" in message:
        return _decode_cancellation(message["toolCallCancellation"])
    if "serverContent" in message:
        return _decode_server_content(message["serverContent"])
    return Unrecognized(message)
