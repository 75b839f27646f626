"""High-level session manager for Gemini Live streaming connections.

This module provides the connection manager that callers use to talk to the
live backend. It handles:
- Credential resolution and endpoint address construction
- Transport lifecycle and the setup handshake
- Close classification (auth failure vs plain disconnect)
- Inbound routing and outbound sends via its router and gateway

Retry and backoff are left to the caller; the session never reconnects on its own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .config import LiveConfig
from .credentials import CredentialProvider, resolve_credential
from .errors import (
    ClosedDuringHandshakeError,
    LiveClientError,
    LiveConnectionError,
    LiveHandshakeError,
    LiveStateError,
    LiveTransportError,
    NoCredentialError,
)
from .events import CloseInfo, EventBus, Listener, LiveEvent
from .gateway import OutboundGateway
from .protocol import (
    AUDIO_PCM_MIME,
    AUTH_HTTP_STATUSES,
    IMAGE_JPEG_MIME,
    build_setup,
    is_auth_failure,
)
from .router import MessageRouter
from .state import ConnectionPhase, SessionState
from .transport.ws import DEFAULT_KEY_PARAM, DEFAULT_LIVE_URL, build_live_url, redact_url
from .transport.ws_client import LiveWsClient, LiveWsMessageType

_LOGGER = logging.getLogger(__name__)

CLIENT_CLOSE_CODE = 1000


class LiveSession:
    """Connection manager for one live conversation.

    Usage:
        session = LiveSession(LiveConfig(), env_credential())
        session.on(LiveEvent.TEXT, print)
        await session.connect()
        await session.send_text("Hello")
        await session.disconnect()
    """

    def __init__(
        self,
        config: LiveConfig,
        credential_provider: CredentialProvider,
        *,
        url: str = DEFAULT_LIVE_URL,
        key_param: str = DEFAULT_KEY_PARAM,
        name: str = "LiveSession",
        ping_interval: float | None = 20,
        timeout: float | None = None,
    ):
        """Initialize session.

        Args:
            config: Setup configuration, sent once per connection
            credential_provider: Callable returning the API key (may be async)
            url: Endpoint URL without the credential
            key_param: Query parameter that carries the credential
            name: Label used in logs
            ping_interval: Websocket keepalive ping interval (seconds)
            timeout: Optional deadline for opening the websocket (seconds)
        """
        self.config = config
        self.url = url
        self.name = name

        self._credential_provider = credential_provider
        self._key_param = key_param
        self._ping_interval = ping_interval
        self._timeout = timeout

        self._state = SessionState(name=name)
        self._bus = EventBus(name)
        self._router = MessageRouter(
            self._bus,
            self._state,
            name=name,
            on_setup_complete=self._on_setup_complete,
        )
        self._gateway = OutboundGateway(self._state, lambda: self._ws, name=name)

        # Connection state
        self._ws: LiveWsClient | None = None
        self._connect_future: asyncio.Future[None] | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._listen_task: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # Public API: Connection Management
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect and complete the setup handshake.

        Concurrent callers, and callers while the connection is open, share the
        same attempt and its outcome.

        Raises:
            NoCredentialError: If the credential provider yields nothing
            InvalidAddressError: If the endpoint URL is malformed
            LiveTransportError: If the websocket cannot be opened
            ClosedDuringHandshakeError: If the connection closes before setup completes
        """
        if self._connect_future is None:
            if not self._state.can_connect:
                raise LiveStateError(
                    f"Cannot connect while {self._state.phase.value}"
                )
            self._connect_future = asyncio.get_running_loop().create_future()
            self._connect_task = asyncio.create_task(
                self._run_connect(self._connect_future)
            )
        else:
            _LOGGER.debug("[%s] Joining existing connection attempt", self.name)

        await asyncio.shield(self._connect_future)

    async def disconnect(self) -> None:
        """Close the connection and settle in CLOSED.

        Without a transport or pending attempt this only moves a FAILED
        session to CLOSED; no event is published.
        """
        if self._ws is None and self._connect_task is None and self._listen_task is None:
            if self._state.phase is ConnectionPhase.FAILED:
                self._state.reset(ConnectionPhase.CLOSED)
            return

        _LOGGER.info("[%s] Disconnecting", self.name)
        future, self._connect_future = self._connect_future, None

        if self._state.phase in (
            ConnectionPhase.CONNECTING,
            ConnectionPhase.OPEN,
            ConnectionPhase.READY,
        ):
            self._state.advance(ConnectionPhase.CLOSING)

        if future is not None and not future.done():
            future.set_exception(
                ClosedDuringHandshakeError(None, "Disconnected by caller")
            )

        await self._cancel_task(self._connect_task)
        self._connect_task = None
        await self._cancel_task(self._listen_task)
        self._listen_task = None

        ws, self._ws = self._ws, None
        self._state.handshake_complete = False
        if ws is not None:
            await ws.close()

        if self._state.phase in (ConnectionPhase.CLOSING, ConnectionPhase.FAILED):
            self._state.reset(ConnectionPhase.CLOSED)

        _LOGGER.info("[%s] Successfully disconnected", self.name)
        if ws is not None:
            self._bus.publish(
                LiveEvent.DISCONNECTED,
                CloseInfo(CLIENT_CLOSE_CODE, "Client disconnect", was_clean=True),
            )

    @property
    def phase(self) -> ConnectionPhase:
        """Get current connection phase."""
        return self._state.phase

    @property
    def is_ready(self) -> bool:
        """Check if the setup handshake has completed."""
        return self._state.is_ready

    @property
    def failure_reason(self) -> str | None:
        return self._state.failure_reason

    # -------------------------------------------------------------------------
    # Public API: Events
    # -------------------------------------------------------------------------

    @property
    def events(self) -> EventBus:
        return self._bus

    def on(self, event: LiveEvent | str, listener: Listener) -> Listener:
        """Register a listener for a session event."""
        return self._bus.on(event, listener)

    def off(self, event: LiveEvent | str, listener: Listener) -> None:
        """Remove a listener."""
        self._bus.off(event, listener)

    # -------------------------------------------------------------------------
    # Public API: Sending
    # -------------------------------------------------------------------------

    @property
    def gateway(self) -> OutboundGateway:
        return self._gateway

    async def send_text(self, text: str, end_of_turn: bool = True) -> None:
        await self._gateway.send_text(text, end_of_turn)

    async def send_audio_chunk(self, data: str, mime_type: str = AUDIO_PCM_MIME) -> None:
        await self._gateway.send_audio_chunk(data, mime_type)

    async def send_image_frame(self, data: str, mime_type: str = IMAGE_JPEG_MIME) -> None:
        await self._gateway.send_image_frame(data, mime_type)

    async def send_tool_result(
        self, call_id: str, *, output: Any = None, error: str | None = None
    ) -> None:
        await self._gateway.send_tool_result(call_id, output=output, error=error)

    # -------------------------------------------------------------------------
    # Internal: Connection Attempt
    # -------------------------------------------------------------------------

    @property
    def _connect_pending(self) -> bool:
        return self._connect_future is not None and not self._connect_future.done()

    async def _run_connect(self, future: asyncio.Future[None]) -> None:
        """Drive one connection attempt; its outcome lands on ``future``."""
        try:
            await self._open_transport()
        except asyncio.CancelledError:
            _LOGGER.debug("[%s] Connection attempt cancelled", self.name)
            raise
        except Exception as err:
            self._fail_connect(future, err)
        finally:
            if self._connect_task is asyncio.current_task():
                self._connect_task = None

    async def _open_transport(self) -> None:
        credential = await resolve_credential(self._credential_provider)
        if credential is None:
            raise NoCredentialError("No API key provided")

        url = build_live_url(self.url, credential, param=self._key_param)

        self._state.advance(ConnectionPhase.CONNECTING)
        _LOGGER.info("[%s] Connecting to %s", self.name, redact_url(url))

        ws = LiveWsClient()
        await ws.connect(url, ping_interval=self._ping_interval, timeout=self._timeout)
        self._ws = ws
        self._state.advance(ConnectionPhase.OPEN)

        _LOGGER.info("[%s] WebSocket connected, starting listener", self.name)
        self._listen_task = asyncio.create_task(self._listen(ws))

    def _fail_connect(self, future: asyncio.Future[None], err: Exception) -> None:
        """Reject a connection attempt that failed before the transport was up."""
        self._state.fail(str(err))

        if isinstance(err, LiveHandshakeError) and err.status in AUTH_HTTP_STATUSES:
            message = f"Authentication failed. HTTP {err.status}"
            _LOGGER.error("[%s] %s", self.name, message)
            self._bus.publish(LiveEvent.AUTH_FAILED, message)
            self._bus.publish(LiveEvent.ERROR, message)
        else:
            _LOGGER.error("[%s] Connection failed: %s", self.name, err)
            self._bus.publish(LiveEvent.ERROR, str(err))

        self._reject(future, err)

    def _reject(self, future: asyncio.Future[None], err: BaseException) -> None:
        if not future.done():
            future.set_exception(err)
        if self._connect_future is future:
            self._connect_future = None

    def _on_setup_complete(self) -> None:
        """Router hook: the backend acknowledged the setup frame."""
        _LOGGER.info("[%s] Session ready", self.name)
        if self._connect_future is not None and not self._connect_future.done():
            self._connect_future.set_result(None)

    # -------------------------------------------------------------------------
    # Internal: Message Listener
    # -------------------------------------------------------------------------

    async def _listen(self, ws: LiveWsClient) -> None:
        """Send setup, then feed inbound frames to the router in order."""
        message_count = 0
        try:
            await self._gateway.send_frame(build_setup(self.config))
            _LOGGER.debug("[%s] Setup sent: %s", self.name, self.config.model)

            async for msg in ws:
                message_count += 1
                if msg.type in (LiveWsMessageType.BINARY, LiveWsMessageType.TEXT):
                    self._router.on_inbound(msg.data)
                elif msg.type is LiveWsMessageType.CLOSED:
                    await self._handle_close(
                        ws, msg.close_code, msg.close_reason, msg.was_clean
                    )
                    return
                elif msg.type is LiveWsMessageType.ERROR:
                    await self._handle_transport_error(ws, msg.error)
                    return

        except asyncio.CancelledError:
            _LOGGER.debug(
                "[%s] Listener cancelled (%d messages)", self.name, message_count
            )
            raise
        except LiveClientError as err:
            await self._handle_transport_error(ws, err)

    async def _teardown(self, ws: LiveWsClient) -> None:
        """Drop the transport reference and handshake flag, then close."""
        if self._ws is ws:
            self._ws = None
        if self._listen_task is asyncio.current_task():
            self._listen_task = None
        self._state.handshake_complete = False
        await ws.close()

    async def _handle_close(
        self,
        ws: LiveWsClient,
        code: int | None,
        reason: str,
        was_clean: bool,
    ) -> None:
        pending = self._connect_future if self._connect_pending else None
        await self._teardown(ws)

        _LOGGER.warning(
            "[%s] WebSocket connection closed. Code: %s, Reason: %r, Clean: %s",
            self.name,
            code,
            reason,
            was_clean,
        )

        if is_auth_failure(code, reason):
            message = f"Authentication failed. Code: {code}, Reason: {reason}"
            _LOGGER.error("[%s] %s", self.name, message)
            self._state.fail(message)
            self._bus.publish(LiveEvent.AUTH_FAILED, message)
            self._bus.publish(LiveEvent.ERROR, message)
        else:
            if pending is not None:
                self._state.fail(f"Closed during handshake ({code})")
            else:
                self._state.reset(ConnectionPhase.CLOSED)
            self._bus.publish(
                LiveEvent.DISCONNECTED, CloseInfo(code, reason, was_clean=was_clean)
            )

        if pending is not None:
            self._reject(pending, ClosedDuringHandshakeError(code, reason))
        else:
            self._connect_future = None

    async def _handle_transport_error(
        self, ws: LiveWsClient, error: BaseException | None
    ) -> None:
        pending = self._connect_future if self._connect_pending else None
        await self._teardown(ws)

        message = f"WebSocket error: {error}"
        _LOGGER.error("[%s] %s", self.name, message)
        self._state.fail(message)
        self._bus.publish(LiveEvent.ERROR, message)

        if pending is not None:
            err = (
                error
                if isinstance(error, LiveTransportError)
                else LiveConnectionError(message)
            )
            self._reject(pending, err)
        else:
            self._connect_future = None

    @staticmethod
    async def _cancel_task(task: asyncio.Task[None] | None) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
