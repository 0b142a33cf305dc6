import asyncio
import json
from typing import Any, Awaitable, Callable, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, ConnectionClosedOK

_CLOSED = object()


class DummyWebSocket:
    """Stand-in for a client connection: records sends, replays fed frames."""

    def __init__(self) -> None:
        self.sent_messages: List[str] = []
        self.closed = False
        self._inbound: asyncio.Queue = asyncio.Queue()

    def feed(self, frame: Any) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._inbound.put_nowait(frame)

    def drop(self) -> None:
        """Break the connection without a close frame."""
        self._inbound.put_nowait(ConnectionClosedError(None, None))

    def sent(self) -> List[dict]:
        return [json.loads(m) for m in self.sent_messages]

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent_messages.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self._inbound.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbound.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


def dummy_connector(dummy: DummyWebSocket, gate: Optional[asyncio.Event] = None):
    """Connector returning ``dummy``; waits for ``gate`` first when given."""
    calls: List[str] = []

    async def connect(url: str, **kwargs: Any) -> DummyWebSocket:
        calls.append(url)
        if gate is not None:
            await gate.wait()
        return dummy

    connect.calls = calls  # type: ignore[attr-defined]
    return connect


MessageHook = Callable[[Any, dict], Awaitable[None]]
ConnectHook = Callable[[Any], Awaitable[None]]


class FakeChatServer:
    """In-process WebSocket server that records every frame it receives."""

    def __init__(self, on_message: Optional[MessageHook] = None, on_connect: Optional[ConnectHook] = None) -> None:
        self.on_message = on_message
        self.on_connect = on_connect
        self.received: List[dict] = []
        self.connections: List[Any] = []
        self.url = ""
        self._server = None

    async def handler(self, websocket) -> None:
        self.connections.append(websocket)
        try:
            if self.on_connect is not None:
                await self.on_connect(websocket)
            async for raw in websocket:
                data = json.loads(raw)
                self.received.append(data)
                if self.on_message is not None:
                    await self.on_message(websocket, data)
        except ConnectionClosed:
            pass

    def received_types(self) -> List[str]:
        return [m["type"] for m in self.received]

    async def __aenter__(self) -> "FakeChatServer":
        self._server = await websockets.serve(self.handler, "127.0.0.1", 0)
        port = list(self._server.sockets)[0].getsockname()[1]
        self.url = f"ws://127.0.0.1:{port}"
        return self

    async def __aexit__(self, *exc) -> None:
        self._server.close()
        await self._server.wait_closed()


async def wait_for(predicate, timeout: float = 3.0) -> bool:
    loop = asyncio.get_running_loop()
    end = loop.time() + timeout
    while loop.time() < end:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


async def collect_until(queue: asyncio.Queue, predicate, timeout: float = 3.0) -> List[Any]:
    """Pull events off ``queue`` up to and including the first matching one."""
    events: List[Any] = []

    async def _pull() -> None:
        while True:
            event = await queue.get()
            events.append(event)
            if predicate(event):
                return

    await asyncio.wait_for(_pull(), timeout)
    return events


def drain(queue: asyncio.Queue) -> List[Any]:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


def free_port() -> int:
    import socket

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
