"""Synchronous publish/subscribe for session events.

Listeners run on the publisher's call stack, in registration order. A failing
listener is logged and does not stop the others.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

_LOGGER = logging.getLogger(__name__)

Listener = Callable[[Any], object]


class LiveEvent(str, Enum):
    """Event names published by a LiveSession."""

    ERROR = "error"
    AUTH_FAILED = "auth_failed"
    DISCONNECTED = "disconnected"
    SETUP_COMPLETE = "setupComplete"
    TOOL_CALL = "tool_call"
    TOOL_CALL_CANCELLATION = "tool_call_cancellation"
    INTERRUPTED = "interrupted"
    TURN_COMPLETE = "turn_complete"
    TEXT = "text"
    AUDIO = "audio"
    CONTENT = "content"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class CloseInfo:
    """Payload of the ``disconnected`` event."""

    code: int | None
    reason: str = ""
    was_clean: bool = False


def _key(event: LiveEvent | str) -> str:
    return event.value if isinstance(event, LiveEvent) else event


class EventBus:
    """Mapping of event name to an ordered list of listeners."""

    def __init__(self, name: str = "LiveSession") -> None:
        self._name = name
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: LiveEvent | str, listener: Listener) -> Listener:
        """Register ``listener`` for ``event``.

        Returns the listener so it can be used as a decorator.
        """
        self._listeners.setdefault(_key(event), []).append(listener)
        return listener

    def off(self, event: LiveEvent | str, listener: Listener) -> None:
        """Remove every registration of ``listener`` for ``event``."""
        key = _key(event)
        listeners = self._listeners.get(key)
        if not listeners:
            return
        self._listeners[key] = [registered for registered in listeners if registered != listener]

    def listener_count(self, event: LiveEvent | str) -> int:
        return len(self._listeners.get(_key(event), ()))

    def clear(self) -> None:
        self._listeners.clear()

    def publish(self, event: LiveEvent | str, data: Any = None) -> bool:
        """Invoke every listener for ``event`` with ``data``.

        Returns:
            True if at least one listener was registered.
        """
        key = _key(event)
        # Snapshot so registrations made during dispatch apply to the next publish
        listeners = tuple(self._listeners.get(key, ()))
        if not listeners:
            return False

        for listener in listeners:
            try:
                listener(data)
            except Exception as err:
                _LOGGER.exception(
                    "[%s] Listener error for %s event: %s", self._name, key, err
                )
        return True
