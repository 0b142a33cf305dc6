from __future__ import annotations
import asyncio
import socket
import ssl
from contextlib import suppress
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatus, InvalidURI

from shared.errors import NotConnectedError
from shared.log import get_logger, log_frame
from shared.protocol import IncomingMessage, OutgoingMessage, SetName, Unrecognized, decode
from shared.utils import transport_of
from .events import ConnectFailed, ConnectionLost, Handshake, RawFrame, StateChanged
from .state import ConnectionPhase, ConnectionState

logger = get_logger(__name__)


Connector = Callable[..., Awaitable[Any]]


def describe_connect_error(exc: BaseException) -> str:
    """Human-readable reason for a failed connection attempt."""
    if isinstance(exc, InvalidURI):
        return f"Invalid WebSocket URL: {exc}"
    if isinstance(exc, InvalidStatus):
        status = getattr(exc.response, "status_code", "?")
        return f"Server rejected the WebSocket handshake (HTTP {status})."
    if isinstance(exc, InvalidHandshake):
        return f"WebSocket handshake failed: {exc}"
    if isinstance(exc, ssl.SSLError):
        return f"TLS handshake failed: {exc}"
    if isinstance(exc, ConnectionRefusedError):
        return "Connection refused. Check that the server is running and the host/port are correct."
    if isinstance(exc, socket.gaierror):
        return "DNS/host lookup failed. Check the server hostname."
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return "Connection timed out. Check network, host and firewall."
    if isinstance(exc, OSError):
        return f"Network I/O error while connecting: {exc}"
    return f"Connection failed: {exc}"


def describe_stream_error(exc: BaseException) -> str:
    """Human-readable reason for a connection that broke mid-session."""
    if isinstance(exc, ConnectionClosed):
        if exc.rcvd is None:
            return "Connection closed abnormally."
        reason = f": {exc.rcvd.reason}" if exc.rcvd.reason else ""
        return f"Connection closed by server (code {exc.rcvd.code}{reason})."
    if isinstance(exc, ConnectionResetError):
        return "Connection reset by peer."
    if isinstance(exc, ConnectionAbortedError):
        return "Connection aborted."
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return "Connection timed out."
    return f"Connection I/O error: {exc}"


class ConnectionManager:
    """
    Owns the WebSocket connection to the chat server.

    Lifecycle:
        Disconnected --connect(url)--> Connecting(url) --open--> Connected(url)
        Connected --disconnect() / I/O error--> Disconnecting --> Disconnected

    The socket is driven by a background task (reader + writer). Everything
    observable is published on ``events`` in order: state changes, decoded
    incoming messages and diagnostics. ``send`` only queues, so callers never
    wait on the network.
    """

    def __init__(
        self,
        events: Optional[asyncio.Queue] = None,
        *,
        open_timeout: float = 10.0,
        ping_interval: Optional[float] = 15.0,
        ping_timeout: Optional[float] = 45.0,
        close_timeout: float = 2.0,
        echo_frames: bool = False,
        connector: Optional[Connector] = None,
    ) -> None:
        self.events: asyncio.Queue = events if events is not None else asyncio.Queue()
        self.open_timeout = open_timeout
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.close_timeout = close_timeout
        self.echo_frames = echo_frames
        self._connector: Connector = connector or websockets.connect

        self._state = ConnectionState.disconnected()
        self._websocket: Any = None
        self._outbox: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._opened: Optional[asyncio.Future] = None
        self._lifecycle = asyncio.Lock()
        self._requests = 0
        self.last_url: Optional[str] = None
        self.last_preferred_name: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    def _set_state(self, state: ConnectionState) -> None:
        previous = self._state
        if previous == state:
            return
        self._state = state
        logger.info(f"Connection {previous} -> {state}", extra={"state": state.phase.value})
        self._emit(StateChanged(state=state, previous=previous))

    def _emit(self, event: Any) -> None:
        self.events.put_nowait(event)

    # ========================================
    #           LIFECYCLE
    # ========================================

    async def connect(self, url: str, preferred_name: Optional[str] = None) -> bool:
        """
        Open a connection to ``url`` and return whether it succeeded.

        A request for the target already being connected to is a no-op; any
        other existing connection is torn down first. Once open, the preferred
        name (if any) is re-asserted with a ``setName`` ahead of user traffic.
        Overlapping requests are applied one at a time and the latest wins.
        """
        self._requests += 1
        url = url.strip()
        async with self._lifecycle:
            if self._state.is_active and self._state.url == url:
                logger.debug(f"Already {self._state.phase.value} to {url}")
                opened = self._opened
                if self._state.is_connected or opened is None:
                    return self._state.is_connected
            else:
                await self._shutdown()
                self.last_url = url
                self.last_preferred_name = preferred_name
                opened = asyncio.get_running_loop().create_future()
                self._opened = opened
                self._set_state(ConnectionState.connecting(url))
                self._task = asyncio.create_task(self._run(url, preferred_name, opened))
        return await asyncio.shield(opened)

    async def disconnect(self) -> None:
        """Close the connection. Returns once the manager is Disconnected."""
        self._requests += 1
        async with self._lifecycle:
            await self._shutdown()

    async def _shutdown(self) -> None:
        # caller holds the lifecycle lock
        task = self._task
        if task is None or self._state.phase is ConnectionPhase.DISCONNECTED:
            return
        if self._state.phase is not ConnectionPhase.DISCONNECTING:
            self._set_state(ConnectionState.disconnecting())
            task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def reconnect(
        self,
        max_retries: int = 5,
        base_delay: float = 1.0,
        preferred_name: Optional[str] = None,
    ) -> bool:
        """
        Reconnect to the last target with exponential backoff.

        Only runs when called; the manager never retries on its own. Gives up
        as soon as another connect or disconnect request arrives.
        """
        url = self.last_url
        if url is None:
            logger.warning("Reconnect requested but no server was ever connected")
            return False
        name = preferred_name if preferred_name is not None else self.last_preferred_name

        expected = self._requests + 1
        await self.disconnect()
        for attempt in range(max_retries):
            if attempt:
                delay = base_delay * (2 ** (attempt - 1))
                logger.info(f"Reconnecting in {delay}s (attempt {attempt + 1}/{max_retries})")
                await asyncio.sleep(delay)
            if self._requests != expected:
                logger.info(f"Reconnect to {url} superseded by a newer request")
                return False
            expected = self._requests + 1
            if await self.connect(url, name):
                return True
            if self._requests != expected:
                logger.info(f"Reconnect to {url} superseded by a newer request")
                return False
            logger.warning(f"Reconnect attempt {attempt + 1} failed")
        return False

    # ========================================
    #           SEND PATH
    # ========================================

    def send(self, message: OutgoingMessage) -> None:
        """
        Queue ``message`` for transmission in submit order.

        Raises:
            NotConnectedError: the manager is not in the Connected state
        """
        if not self._state.is_connected or self._outbox is None:
            raise NotConnectedError(self._state.phase.value)
        self._outbox.put_nowait(message)

    # ========================================
    #           BACKGROUND TASKS
    # ========================================

    async def _run(self, url: str, preferred_name: Optional[str], opened: asyncio.Future) -> None:
        websocket = None
        lost_reason: Optional[str] = None
        try:
            try:
                websocket = await self._connector(
                    url,
                    open_timeout=self.open_timeout,
                    ping_interval=self.ping_interval,
                    ping_timeout=self.ping_timeout,
                    close_timeout=self.close_timeout,
                )
            except Exception as e:
                reason = describe_connect_error(e)
                logger.warning(f"Connect to {url} failed: {reason}", extra={"server_url": url})
                self._emit(ConnectFailed(url=url, reason=reason))
                return

            self._websocket = websocket
            outbox: asyncio.Queue = asyncio.Queue()
            self._outbox = outbox
            name = preferred_name.strip() if preferred_name else ""
            if name:
                # queued before Connected is published, so it precedes user sends
                outbox.put_nowait(SetName(name))
                logger.debug(f"Re-asserting preferred name {name!r}")

            self._emit(self._handshake_info(url, websocket))
            self._set_state(ConnectionState.connected(url))
            opened.set_result(True)

            lost_reason = await self._pump(websocket, outbox)
        except Exception as e:
            logger.exception(f"Unexpected error on connection to {url}")
            lost_reason = f"Connection failed: {e}"
        finally:
            await self._teardown(websocket, lost_reason, opened)

    async def _pump(self, websocket: Any, outbox: asyncio.Queue) -> Optional[str]:
        reader = asyncio.create_task(self._read_loop(websocket))
        writer = asyncio.create_task(self._write_loop(websocket, outbox))
        try:
            done, _ = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
            first = reader if reader in done else writer
            return first.result()
        finally:
            for task in (reader, writer):
                task.cancel()
            await asyncio.gather(reader, writer, return_exceptions=True)

    async def _read_loop(self, websocket: Any) -> Optional[str]:
        """Forward decoded frames in arrival order; return why the stream ended."""
        try:
            async for raw in websocket:
                message = decode(raw)
                if not self._state.is_connected:
                    break
                if self.echo_frames:
                    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
                    self._emit(RawFrame(direction="<<", text=text))
                self._log_incoming(message)
                self._emit(message)
        except ConnectionClosed as e:
            return describe_stream_error(e)
        except OSError as e:
            return describe_stream_error(e)
        return "Connection closed by server."

    async def _write_loop(self, websocket: Any, outbox: asyncio.Queue) -> str:
        while True:
            message: OutgoingMessage = await outbox.get()
            text = message.to_json()
            if self.echo_frames:
                self._emit(RawFrame(direction=">>", text=text))
            try:
                await websocket.send(text)
            except (ConnectionClosed, OSError) as e:
                logger.warning(f"Write of {message.type.value} failed: {e}")
                return describe_stream_error(e)
            log_frame(logger, "debug", "Sent frame", payload=message.to_dict(),
                      direction="out", server_url=self._state.url)

    async def _teardown(self, websocket: Any, lost_reason: Optional[str], opened: asyncio.Future) -> None:
        requested = self._state.phase is ConnectionPhase.DISCONNECTING
        if not opened.done():
            opened.set_result(False)

        if websocket is not None:
            if not requested:
                self._set_state(ConnectionState.disconnecting())
            if self._outbox is not None and not self._outbox.empty():
                logger.warning(f"Dropping {self._outbox.qsize()} unsent message(s)")
            self._outbox = None
            try:
                await websocket.close()
            except Exception as e:
                logger.debug(f"Error closing connection: {e}")

        self._websocket = None
        self._outbox = None
        self._set_state(ConnectionState.disconnected())
        if websocket is not None and not requested:
            reason = lost_reason or "Connection closed."
            logger.warning(f"Connection lost: {reason}")
            self._emit(ConnectionLost(reason=reason))

    def _handshake_info(self, url: str, websocket: Any) -> Handshake:
        transport = transport_of(url)
        response = getattr(websocket, "response", None)
        headers = getattr(response, "headers", None)
        return Handshake(
            url=url,
            transport=transport,
            tls=transport == "wss",
            http_status=getattr(response, "status_code", None),
            headers=list(headers.raw_items()) if hasattr(headers, "raw_items") else [],
        )

    def _log_incoming(self, message: IncomingMessage) -> None:
        if isinstance(message, Unrecognized):
            logger.warning(f"Unrecognized frame: {message.reason}", extra={"server_url": self._state.url})
        else:
            log_frame(logger, "debug", "Received frame", payload={"type": message.type.value},
                      direction="in", server_url=self._state.url)
