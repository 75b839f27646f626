"""Client core for the Gemini Live bidirectional streaming API."""

__version__ = "0.1.0"

from .config import HarmCategory, LiveConfig, SafetyThreshold, load_config
from .credentials import CredentialProvider, env_credential, static_credential
from .errors import (
    ClosedDuringHandshakeError,
    ConfigLoadError,
    FrameDecodeError,
    InvalidAddressError,
    InvalidToolResponseError,
    LiveClientError,
    LiveConnectionError,
    LiveHandshakeError,
    LiveStateError,
    LiveTimeout,
    LiveTransportError,
    NoCredentialError,
    TransportAbsentError,
    TransportNotOpenError,
)
from .events import CloseInfo, EventBus, LiveEvent
from .gateway import OutboundGateway
from .protocol import (
    FunctionCall,
    InlineDataPart,
    TextPart,
    UnknownPart,
    decode_frame,
)
from .router import MessageRouter, partition_parts
from .session import LiveSession
from .state import ConnectionPhase, SessionState

__all__ = [
    "CloseInfo",
    "ClosedDuringHandshakeError",
    "ConfigLoadError",
    "ConnectionPhase",
    "CredentialProvider",
    "EventBus",
    "FrameDecodeError",
    "FunctionCall",
    "HarmCategory",
    "InlineDataPart",
    "InvalidAddressError",
    "InvalidToolResponseError",
    "LiveClientError",
    "LiveConfig",
    "LiveConnectionError",
    "LiveEvent",
    "LiveHandshakeError",
    "LiveSession",
    "LiveStateError",
    "LiveTimeout",
    "LiveTransportError",
    "MessageRouter",
    "NoCredentialError",
    "OutboundGateway",
    "SafetyThreshold",
    "SessionState",
    "TextPart",
    "TransportAbsentError",
    "TransportNotOpenError",
    "UnknownPart",
    "__version__",
    "decode_frame",
    "env_credential",
    "load_config",
    "partition_parts",
    "static_credential",
]
