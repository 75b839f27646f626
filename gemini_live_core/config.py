"""Session configuration and YAML loading.

The configuration is immutable for the lifetime of a session and is sent once,
as the setup frame, right after the websocket opens.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from .errors import ConfigLoadError

DEFAULT_MODEL = "models/gemini-2.0-flash-exp"
DEFAULT_VOICE = "Aoede"
DEFAULT_SYSTEM_INSTRUCTIONS = "You are a helpful assistant"


class HarmCategory(Enum):
    """Safety categories exposed by the backend."""

    HARASSMENT = "HARM_CATEGORY_HARASSMENT"
    DANGEROUS_CONTENT = "HARM_CATEGORY_DANGEROUS_CONTENT"
    SEXUALLY_EXPLICIT = "HARM_CATEGORY_SEXUALLY_EXPLICIT"
    CIVIC_INTEGRITY = "HARM_CATEGORY_CIVIC_INTEGRITY"


class SafetyThreshold(Enum):
    """Blocking threshold, indexed by the 0-3 level used in config files."""

    BLOCK_NONE = 0
    BLOCK_ONLY_HIGH = 1
    BLOCK_MEDIUM_AND_ABOVE = 2
    BLOCK_LOW_AND_ABOVE = 3

    @classmethod
    def from_level(cls, level: int) -> SafetyThreshold:
        """Map a 0-3 level to its threshold."""
        if isinstance(level, bool) or not isinstance(level, int):
            raise ValueError(f"Safety level must be an integer, got {level!r}")
        try:
            return cls(level)
        except ValueError as err:
            raise ValueError(f"Safety level must be between 0 and 3, got {level}") from err


# Config-file keys for each category
_SAFETY_KEYS: dict[str, HarmCategory] = {
    "harassment": HarmCategory.HARASSMENT,
    "dangerous_content": HarmCategory.DANGEROUS_CONTENT,
    "sexually_explicit": HarmCategory.SEXUALLY_EXPLICIT,
    "civic_integrity": HarmCategory.CIVIC_INTEGRITY,
}


def _default_safety() -> dict[HarmCategory, SafetyThreshold]:
    return {category: SafetyThreshold.BLOCK_LOW_AND_ABOVE for category in HarmCategory}


@dataclass(frozen=True)
class LiveConfig:
    """Configuration for a Gemini Live session.

    Attributes:
        model: Model resource name.
        response_modalities: Modalities the model answers with ("audio", "text").
        voice: Prebuilt voice name for audio responses.
        system_instructions: System prompt text.
        temperature: Sampling temperature.
        top_p: Nucleus sampling mass.
        top_k: Top-k sampling cutoff.
        safety: Threshold per harm category.
        tools: Function declarations offered to the model.
    """

    model: str = DEFAULT_MODEL
    response_modalities: tuple[str, ...] = ("audio",)
    voice: str = DEFAULT_VOICE
    system_instructions: str = DEFAULT_SYSTEM_INSTRUCTIONS
    temperature: float = 1.8
    top_p: float = 0.95
    top_k: int = 65
    safety: Mapping[HarmCategory, SafetyThreshold] = field(
        default_factory=_default_safety, hash=False
    )
    tools: tuple[Mapping[str, Any], ...] = field(default=(), hash=False)

    def __post_init__(self) -> None:
        # Stored as read-only views over private copies.
        object.__setattr__(self, "safety", MappingProxyType(dict(self.safety)))
        object.__setattr__(
            self, "tools", tuple(MappingProxyType(dict(t)) for t in self.tools)
        )

    def to_setup(self) -> dict[str, Any]:
        """Render the body of the setup frame."""
        setup: dict[str, Any] = {
            "model": self.model,
            "generationConfig": {
                "temperature": self.temperature,
                "top_p": self.top_p,
                "top_k": self.top_k,
                "responseModalities": list(self.response_modalities),
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self.voice}}
                },
            },
            "systemInstruction": {"parts": [{"text": self.system_instructions}]},
            "safetySettings": [
                {"category": category.value, "threshold": threshold.name}
                for category, threshold in self.safety.items()
            ],
        }
        if self.tools:
            setup["tools"] = {"functionDeclarations": [dict(t) for t in self.tools]}
        return setup


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file with error handling."""
    if not path.exists():
        raise ConfigLoadError(f"File not found: {path}")
    with path.open() as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as err:
            raise ConfigLoadError(f"Invalid YAML in {path}: {err}") from err
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(f"Config root must be a mapping: {path}")
    return data


def _parse_safety(data: Any) -> dict[HarmCategory, SafetyThreshold]:
    safety = _default_safety()
    if data is None:
        return safety
    if not isinstance(data, dict):
        raise ConfigLoadError("safety must be a mapping of category to level")

    for key, level in data.items():
        category = _SAFETY_KEYS.get(key)
        if category is None:
            raise ConfigLoadError(f"Unknown safety category: {key}")
        try:
            safety[category] = SafetyThreshold.from_level(level)
        except ValueError as err:
            raise ConfigLoadError(f"Invalid safety level for {key}: {err}") from err
    return safety


def config_from_dict(data: dict[str, Any]) -> LiveConfig:
    """Build a LiveConfig from a plain mapping, applying defaults."""
    modalities = data.get("response_modalities", ["audio"])
    if isinstance(modalities, str):
        modalities = [modalities]

    tools = data.get("tools") or []
    if not isinstance(tools, list) or not all(isinstance(t, dict) for t in tools):
        raise ConfigLoadError("tools must be a list of function declarations")

    try:
        return LiveConfig(
            model=str(data.get("model", DEFAULT_MODEL)),
            response_modalities=tuple(str(m) for m in modalities),
            voice=str(data.get("voice", DEFAULT_VOICE)),
            system_instructions=str(
                data.get("system_instructions", DEFAULT_SYSTEM_INSTRUCTIONS)
            ),
            temperature=float(data.get("temperature", 1.8)),
            top_p=float(data.get("top_p", 0.95)),
            top_k=int(data.get("top_k", 65)),
            safety=_parse_safety(data.get("safety")),
            tools=tuple(tools),
        )
    except (TypeError, ValueError) as err:
        raise ConfigLoadError(f"Invalid configuration value: {err}") from err


def load_config(path: Path) -> LiveConfig:
    """Load a session configuration from a YAML file.

    Args:
        path: Path to the YAML document.

    Returns:
        Parsed LiveConfig; absent keys take their defaults.

    Raises:
        ConfigLoadError: If the file is missing or malformed.
    """
    return config_from_dict(_load_yaml(path))
