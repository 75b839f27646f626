"""Connection phase state machine for a live session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .errors import LiveStateError

_LOGGER = logging.getLogger(__name__)


class ConnectionPhase(Enum):
    """Connection lifecycle phases."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"  # transport up, setup handshake pending
    READY = "ready"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"


_TRANSITIONS: dict[ConnectionPhase, frozenset[ConnectionPhase]] = {
    ConnectionPhase.IDLE: frozenset({ConnectionPhase.CONNECTING}),
    ConnectionPhase.CONNECTING: frozenset(
        {ConnectionPhase.OPEN, ConnectionPhase.CLOSING, ConnectionPhase.CLOSED}
    ),
    ConnectionPhase.OPEN: frozenset(
        {ConnectionPhase.READY, ConnectionPhase.CLOSING, ConnectionPhase.CLOSED}
    ),
    ConnectionPhase.READY: frozenset({ConnectionPhase.CLOSING, ConnectionPhase.CLOSED}),
    ConnectionPhase.CLOSING: frozenset({ConnectionPhase.CLOSED}),
    ConnectionPhase.CLOSED: frozenset({ConnectionPhase.CONNECTING}),
    ConnectionPhase.FAILED: frozenset(
        {ConnectionPhase.CONNECTING, ConnectionPhase.CLOSED}
    ),
}


@dataclass
class SessionState:
    """Tracks the connection phase and whether setup has been acknowledged.

    FAILED is reachable from every phase through ``fail()``; every other move
    must follow the transition table.
    """

    name: str = "LiveSession"
    phase: ConnectionPhase = ConnectionPhase.IDLE
    handshake_complete: bool = False
    failure_reason: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.phase is ConnectionPhase.READY and self.handshake_complete

    @property
    def can_connect(self) -> bool:
        return ConnectionPhase.CONNECTING in _TRANSITIONS[self.phase]

    def advance(self, phase: ConnectionPhase) -> None:
        """Move to ``phase``; staying in the current phase is a no-op.

        Raises:
            LiveStateError: If the transition is not allowed.
        """
        if phase is self.phase:
            return
        if phase is ConnectionPhase.FAILED:
            raise LiveStateError("Use fail() to enter the FAILED phase")
        if phase not in _TRANSITIONS[self.phase]:
            raise LiveStateError(
                f"Illegal transition {self.phase.value} -> {phase.value}"
            )
        _LOGGER.debug("[%s] Phase: %s → %s", self.name, self.phase.value, phase.value)
        if phase is ConnectionPhase.CONNECTING:
            self.failure_reason = None
        self.phase = phase

    def fail(self, reason: str) -> None:
        """Enter FAILED from any phase and drop the handshake flag."""
        _LOGGER.debug(
            "[%s] Phase: %s → failed (%s)", self.name, self.phase.value, reason
        )
        self.phase = ConnectionPhase.FAILED
        self.failure_reason = reason
        self.handshake_complete = False

    def complete_handshake(self) -> bool:
        """Record the setup acknowledgement and move to READY.

        Returns:
            True on the first acknowledgement of this connection, False for
            duplicates.
        """
        if self.handshake_complete:
            return False
        self.advance(ConnectionPhase.READY)
        self.handshake_complete = True
        return True

    def reset(self, phase: ConnectionPhase = ConnectionPhase.CLOSED) -> None:
        """Clear handshake state after the transport is torn down."""
        self.handshake_complete = False
        self.advance(phase)
