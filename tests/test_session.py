"""Test LiveSession connection lifecycle."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from gemini_live_core import (
    CloseInfo,
    ClosedDuringHandshakeError,
    ConnectionPhase,
    InvalidAddressError,
    LiveConfig,
    LiveConnectionError,
    LiveEvent,
    LiveHandshakeError,
    LiveSession,
    NoCredentialError,
    static_credential,
)
from gemini_live_core.protocol import build_client_content, build_setup

from .conftest import EventRecorder, FakeWsClient, settle

CONFIG = LiveConfig(model="models/test")


def _session(provider=None, **kwargs) -> LiveSession:
    if provider is None:
        provider = static_credential("secret")
    return LiveSession(CONFIG, provider, name="test", **kwargs)


async def _ready(session: LiveSession, fake_ws: FakeWsClient) -> None:
    fake_ws.feed({"setupComplete": {}})
    await session.connect()


def test_session_creation():
    session = _session()

    assert session.phase is ConnectionPhase.IDLE
    assert not session.is_ready
    assert session.failure_reason is None


class TestConnect:
    """Tests for connect() and the setup handshake."""

    @pytest.mark.asyncio
    async def test_handshake(self, patched_ws, fake_ws):
        session = _session()
        recorder = EventRecorder(session.events)

        await _ready(session, fake_ws)

        assert session.is_ready
        assert session.phase is ConnectionPhase.READY
        assert fake_ws.sent[0] == build_setup(CONFIG)
        assert fake_ws.connect_calls[0].endswith("?key=secret")
        assert recorder.names() == ["setupComplete"]

        await session.disconnect()

    @pytest.mark.asyncio
    async def test_setup_sent_before_setup_complete(self, patched_ws, fake_ws):
        session = _session()
        task = asyncio.create_task(session.connect())
        await settle()

        assert fake_ws.sent == [build_setup(CONFIG)]
        assert session.phase is ConnectionPhase.OPEN
        assert not task.done()

        fake_ws.feed({"setupComplete": {}})
        await task
        assert session.is_ready

        await session.disconnect()

    @pytest.mark.asyncio
    async def test_async_credential_provider(self, patched_ws, fake_ws):
        async def provider():
            return "from-vault"

        session = _session(provider)
        await _ready(session, fake_ws)

        assert fake_ws.connect_calls[0].endswith("?key=from-vault")
        await session.disconnect()

    @pytest.mark.asyncio
    async def test_concurrent_connects_share_one_attempt(self, patched_ws, fake_ws):
        session = _session()
        first = asyncio.create_task(session.connect())
        second = asyncio.create_task(session.connect())
        await settle()

        fake_ws.feed({"setupComplete": {}})
        await asyncio.gather(first, second)

        patched_ws.assert_called_once()
        assert len(fake_ws.connect_calls) == 1
        assert len(fake_ws.sent) == 1

        await session.disconnect()

    @pytest.mark.asyncio
    async def test_concurrent_connects_share_failure(self):
        failing = FakeWsClient(fail_with=LiveConnectionError("refused"))
        with patch("gemini_live_core.session.LiveWsClient", return_value=failing) as ws_class:
            session = _session()
            results = await asyncio.gather(
                session.connect(), session.connect(), return_exceptions=True
            )

        ws_class.assert_called_once()
        assert all(isinstance(r, LiveConnectionError) for r in results)
        assert results[0] is results[1]
        assert session.phase is ConnectionPhase.FAILED

    @pytest.mark.asyncio
    async def test_connect_while_ready_returns_immediately(self, patched_ws, fake_ws):
        session = _session()
        await _ready(session, fake_ws)

        await session.connect()

        patched_ws.assert_called_once()
        await session.disconnect()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("credential", [None, "", "   "])
    async def test_no_credential(self, patched_ws, credential):
        session = _session(static_credential(credential))
        recorder = EventRecorder(session.events)

        with pytest.raises(NoCredentialError):
            await session.connect()

        patched_ws.assert_not_called()
        assert recorder.names() == ["error"]
        assert session.phase is ConnectionPhase.FAILED
        assert session.failure_reason == "No API key provided"

    @pytest.mark.asyncio
    async def test_invalid_address(self, patched_ws):
        session = _session(url="https://example.com/live")

        with pytest.raises(InvalidAddressError):
            await session.connect()

        patched_ws.assert_not_called()
        assert session.phase is ConnectionPhase.FAILED

    @pytest.mark.asyncio
    async def test_transport_failure_on_open(self):
        failing = FakeWsClient(fail_with=LiveConnectionError("WebSocket connection failed"))
        with patch("gemini_live_core.session.LiveWsClient", return_value=failing):
            session = _session()
            recorder = EventRecorder(session.events)
            with pytest.raises(LiveConnectionError):
                await session.connect()

        assert recorder.events == [("error", "WebSocket connection failed")]
        assert session.phase is ConnectionPhase.FAILED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_http_auth_rejection(self, status):
        failing = FakeWsClient(
            fail_with=LiveHandshakeError(f"rejected with HTTP {status}", status=status)
        )
        with patch("gemini_live_core.session.LiveWsClient", return_value=failing):
            session = _session()
            recorder = EventRecorder(session.events)
            with pytest.raises(LiveHandshakeError):
                await session.connect()

        assert recorder.names() == ["auth_failed", "error"]

    @pytest.mark.asyncio
    async def test_http_server_error_is_not_auth(self):
        failing = FakeWsClient(fail_with=LiveHandshakeError("rejected", status=500))
        with patch("gemini_live_core.session.LiveWsClient", return_value=failing):
            session = _session()
            recorder = EventRecorder(session.events)
            with pytest.raises(LiveHandshakeError):
                await session.connect()

        assert recorder.names() == ["error"]

    @pytest.mark.asyncio
    async def test_setup_send_failure_rejects_connect(self, patched_ws, fake_ws):
        fake_ws.send_error = LiveConnectionError("WebSocket send failed")
        session = _session()
        recorder = EventRecorder(session.events)

        with pytest.raises(LiveConnectionError):
            await session.connect()

        assert recorder.names() == ["error"]
        assert session.phase is ConnectionPhase.FAILED
        assert fake_ws.close_calls == 1


class TestClose:
    """Tests for close classification."""

    @pytest.mark.asyncio
    async def test_plain_close_after_ready(self, patched_ws, fake_ws):
        session = _session()
        recorder = EventRecorder(session.events)
        await _ready(session, fake_ws)

        fake_ws.feed_close(1000, "bye")
        await settle()

        assert recorder.events[-1] == ("disconnected", CloseInfo(1000, "bye", was_clean=True))
        assert session.phase is ConnectionPhase.CLOSED
        assert not session.is_ready

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [4001, 4003, 1008])
    async def test_auth_close_after_ready(self, patched_ws, fake_ws, code):
        session = _session()
        recorder = EventRecorder(session.events)
        await _ready(session, fake_ws)

        fake_ws.feed_close(code, "")
        await settle()

        assert recorder.names() == ["setupComplete", "auth_failed", "error"]
        assert session.phase is ConnectionPhase.FAILED

    @pytest.mark.asyncio
    async def test_auth_reason_with_generic_code(self, patched_ws, fake_ws):
        session = _session()
        recorder = EventRecorder(session.events)
        await _ready(session, fake_ws)

        fake_ws.feed_close(1011, "API key not valid", was_clean=False)
        await settle()

        assert "auth_failed" in recorder.names()
        assert "disconnected" not in recorder.names()

    @pytest.mark.asyncio
    async def test_close_during_handshake(self, patched_ws, fake_ws):
        session = _session()
        recorder = EventRecorder(session.events)
        fake_ws.feed_close(1011, "Internal error", was_clean=False)

        with pytest.raises(ClosedDuringHandshakeError) as exc_info:
            await session.connect()

        assert exc_info.value.code == 1011
        assert exc_info.value.reason == "Internal error"
        assert recorder.events == [
            ("disconnected", CloseInfo(1011, "Internal error", was_clean=False))
        ]
        assert session.phase is ConnectionPhase.FAILED

    @pytest.mark.asyncio
    async def test_auth_close_during_handshake(self, patched_ws, fake_ws):
        session = _session()
        recorder = EventRecorder(session.events)
        fake_ws.feed_close(4001, "bad key")

        with pytest.raises(ClosedDuringHandshakeError):
            await session.connect()

        assert recorder.names() == ["auth_failed", "error"]
        assert "bad key" in session.failure_reason

    @pytest.mark.asyncio
    async def test_transport_error_after_ready(self, patched_ws, fake_ws):
        session = _session()
        recorder = EventRecorder(session.events)
        await _ready(session, fake_ws)

        fake_ws.feed_error(OSError("connection reset"))
        await settle()

        assert recorder.names() == ["setupComplete", "error"]
        assert "connection reset" in recorder.data("error")[0]
        assert session.phase is ConnectionPhase.FAILED

    @pytest.mark.asyncio
    async def test_transport_error_during_handshake(self, patched_ws, fake_ws):
        session = _session()
        fake_ws.feed_error(OSError("connection reset"))

        with pytest.raises(LiveConnectionError):
            await session.connect()

    @pytest.mark.asyncio
    async def test_reconnect_after_close(self, patched_ws, fake_ws):
        session = _session()
        await _ready(session, fake_ws)
        fake_ws.feed_close(1000, "bye")
        await settle()
        assert session.phase is ConnectionPhase.CLOSED

        await _ready(session, fake_ws)

        assert session.is_ready
        assert patched_ws.call_count == 2
        assert fake_ws.sent == [build_setup(CONFIG), build_setup(CONFIG)]
        await session.disconnect()


class TestDisconnect:
    """Tests for disconnect()."""

    @pytest.mark.asyncio
    async def test_disconnect_never_connected(self):
        session = _session()
        recorder = EventRecorder(session.events)

        await session.disconnect()

        assert recorder.events == []
        assert session.phase is ConnectionPhase.IDLE

    @pytest.mark.asyncio
    async def test_disconnect_twice(self, patched_ws, fake_ws):
        session = _session()
        recorder = EventRecorder(session.events)
        await _ready(session, fake_ws)

        await session.disconnect()
        await session.disconnect()

        assert recorder.data("disconnected") == [
            CloseInfo(1000, "Client disconnect", was_clean=True)
        ]
        assert fake_ws.close_calls == 1
        assert session.phase is ConnectionPhase.CLOSED
        assert not session.is_ready

    @pytest.mark.asyncio
    async def test_disconnect_while_awaiting_setup(self, patched_ws, fake_ws):
        session = _session()
        recorder = EventRecorder(session.events)
        task = asyncio.create_task(session.connect())
        await settle()
        assert session.phase is ConnectionPhase.OPEN

        await session.disconnect()

        with pytest.raises(ClosedDuringHandshakeError):
            await task
        assert recorder.names() == ["disconnected"]
        assert session.phase is ConnectionPhase.CLOSED

    @pytest.mark.asyncio
    async def test_disconnect_while_opening(self, patched_ws, fake_ws):
        fake_ws.connect_gate = asyncio.Event()
        session = _session()
        recorder = EventRecorder(session.events)
        task = asyncio.create_task(session.connect())
        await settle()
        assert session.phase is ConnectionPhase.CONNECTING

        await session.disconnect()

        with pytest.raises(ClosedDuringHandshakeError):
            await task
        assert recorder.events == []
        assert fake_ws.close_calls == 0
        assert session.phase is ConnectionPhase.CLOSED

    @pytest.mark.asyncio
    async def test_disconnect_fails_blocked_send(self, patched_ws, fake_ws):
        session = _session()
        await _ready(session, fake_ws)
        fake_ws.hold_sends = True

        send = asyncio.create_task(session.send_text("stuck"))
        await settle()
        assert not send.done()

        await session.disconnect()

        with pytest.raises(LiveConnectionError):
            await asyncio.wait_for(send, timeout=1)

    @pytest.mark.asyncio
    async def test_disconnect_after_failure_moves_to_closed(self, patched_ws, fake_ws):
        session = _session()
        recorder = EventRecorder(session.events)
        await _ready(session, fake_ws)
        fake_ws.feed_close(4001, "bad key")
        await settle()
        assert session.phase is ConnectionPhase.FAILED

        await session.disconnect()

        assert session.phase is ConnectionPhase.CLOSED
        assert "disconnected" not in recorder.names()

    @pytest.mark.asyncio
    async def test_disconnect_after_failed_connect(self, patched_ws):
        session = _session(static_credential(None))
        with pytest.raises(NoCredentialError):
            await session.connect()

        await session.disconnect()

        assert session.phase is ConnectionPhase.CLOSED


class TestMessaging:
    """Tests for sends and inbound routing through the session."""

    @pytest.mark.asyncio
    async def test_send_before_ready_is_dropped(self, patched_ws, fake_ws):
        session = _session()
        await session.send_text("too early")
        assert fake_ws.sent == []

    @pytest.mark.asyncio
    async def test_send_after_ready(self, patched_ws, fake_ws):
        session = _session()
        await _ready(session, fake_ws)

        await session.send_text("hello")
        await session.send_tool_result("t1", output={"ok": True})

        assert fake_ws.sent[1] == build_client_content("hello")
        assert fake_ws.sent[2]["toolResponse"]["functionResponses"][0]["id"] == "t1"
        await session.disconnect()

    @pytest.mark.asyncio
    async def test_inbound_text_reaches_listener(self, patched_ws, fake_ws):
        session = _session()
        received: list[str] = []
        session.on(LiveEvent.TEXT, received.append)
        await _ready(session, fake_ws)

        fake_ws.feed({"serverContent": {"modelTurn": {"parts": [{"text": "hi there"}]}}})
        await settle()

        assert received == ["hi there"]
        await session.disconnect()

    @pytest.mark.asyncio
    async def test_malformed_frame_does_not_end_session(self, patched_ws, fake_ws):
        session = _session()
        received: list[str] = []
        session.on(LiveEvent.TEXT, received.append)
        await _ready(session, fake_ws)

        fake_ws.feed_raw(b"{broken")
        fake_ws.feed({"serverContent": {"modelTurn": {"parts": [{"text": "next"}]}}})
        await settle()

        assert received == ["next"]
        assert session.is_ready
        await session.disconnect()

    @pytest.mark.asyncio
    async def test_deeply_nested_frame_does_not_end_session(self, patched_ws, fake_ws):
        session = _session()
        received: list[str] = []
        session.on(LiveEvent.TEXT, received.append)
        await _ready(session, fake_ws)

        fake_ws.feed_raw(b"[" * 200000)
        fake_ws.feed({"serverContent": {"modelTurn": {"parts": [{"text": "after"}]}}})
        await settle()

        assert received == ["after"]
        assert session.is_ready
        await session.disconnect()
