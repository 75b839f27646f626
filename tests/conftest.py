"""Pytest configuration and fixtures for gemini_live_core tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from gemini_live_core.errors import LiveConnectionError
from gemini_live_core.events import EventBus, LiveEvent
from gemini_live_core.transport.ws_client import LiveWsMessage, LiveWsMessageType


class FakeWsClient:
    """In-memory stand-in for LiveWsClient.

    Inbound traffic is queued with feed*() and consumed by the session's
    listener in order. Outbound JSON lands in ``sent``.
    """

    def __init__(self, *, fail_with: Exception | None = None) -> None:
        self.connect_calls: list[str] = []
        self.sent: list[dict[str, Any]] = []
        self.close_calls = 0
        self.send_error: Exception | None = None
        self.connect_gate: asyncio.Event | None = None
        self.hold_sends = False
        self._closed = asyncio.Event()
        self._fail_with = fail_with
        self._open = False
        self._queue: asyncio.Queue[LiveWsMessage] = asyncio.Queue()

    async def connect(
        self,
        url: str,
        *,
        ping_interval: float | None = 20,
        timeout: float | None = None,
    ) -> None:
        self.connect_calls.append(url)
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self._fail_with is not None:
            raise self._fail_with
        self._closed.clear()
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    async def close(self) -> None:
        self.close_calls += 1
        self._open = False
        self._closed.set()

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self.send_error is not None:
            raise self.send_error
        if self.hold_sends:
            # A held send only completes by failing once the transport closes.
            await self._closed.wait()
            raise LiveConnectionError("WebSocket closed while sending")
        self.sent.append(payload)

    def feed(self, payload: dict[str, Any]) -> None:
        """Queue a JSON message as a binary frame."""
        self.feed_raw(json.dumps(payload).encode("utf-8"))

    def feed_raw(self, data: bytes | str) -> None:
        msg_type = (
            LiveWsMessageType.BINARY if isinstance(data, bytes) else LiveWsMessageType.TEXT
        )
        self._queue.put_nowait(LiveWsMessage(msg_type, data))

    def feed_close(self, code: int, reason: str = "", *, was_clean: bool = True) -> None:
        self._open = False
        self._queue.put_nowait(
            LiveWsMessage(
                LiveWsMessageType.CLOSED,
                close_code=code,
                close_reason=reason,
                was_clean=was_clean,
            )
        )

    def feed_error(self, error: BaseException) -> None:
        self._open = False
        self._queue.put_nowait(LiveWsMessage(LiveWsMessageType.ERROR, error=error))

    def __aiter__(self):
        return self._iter_messages()

    async def _iter_messages(self):
        while True:
            yield await self._queue.get()


class EventRecorder:
    """Records every LiveEvent published on a bus, in order."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[tuple[str, Any]] = []
        for event in LiveEvent:
            bus.on(event, self._make_listener(event.value))

    def _make_listener(self, name: str):
        def _record(data: Any) -> None:
            self.events.append((name, data))

        return _record

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def data(self, name: str) -> list[Any]:
        return [data for event, data in self.events if event == name]


async def settle(rounds: int = 10) -> None:
    """Let pending tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fake_ws() -> FakeWsClient:
    return FakeWsClient()


@pytest.fixture
def patched_ws(fake_ws: FakeWsClient) -> Iterator[MagicMock]:
    """Make LiveSession build the fake transport."""
    with patch(
        "gemini_live_core.session.LiveWsClient", return_value=fake_ws
    ) as ws_class:
        yield ws_class


@pytest.fixture
def bus() -> EventBus:
    return EventBus("test")


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus)
