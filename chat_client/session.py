from __future__ import annotations
import asyncio
import time
from typing import AsyncIterator, Dict, List, Optional, Set

from shared.errors import ChatClientError, InvalidServerUrlError, SettingsSaveError
from shared.log import get_logger
from shared.protocol import AckName, Ping, Pong, encode
from shared.utils import is_ws_url
from .connection import ConnectionManager
from .events import ConnectFailed, Event, PingRoundTrip, SettingsSaveFailed, StateChanged
from .settings import Settings, SettingsStore
from .state import ConnectionPhase, ConnectionState

logger = get_logger(__name__)

# Unanswered pings are forgotten after this many seconds, or when too many pile up
PING_EXPIRY_SECONDS = 60.0
MAX_PENDING_PINGS = 64


class ChatSession:
    """
    The single entry point for a front-end.

    ``submit`` turns typed text into a message and hands it to the
    connection; ``poll`` / ``events`` deliver everything that happened since.
    Lifecycle requests are scheduled as tasks so the caller never waits on
    the network.
    """

    def __init__(self, store: Optional[SettingsStore] = None, manager: Optional[ConnectionManager] = None) -> None:
        self.store = store or SettingsStore()
        self.settings: Settings = self.store.load()
        self.manager = manager or ConnectionManager()
        self._pending_pings: Dict[str, float] = {}
        self._background_tasks: Set[asyncio.Task] = set()
        self._reconnect_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ConnectionState:
        return self.manager.state

    # ========================================
    #           INPUT
    # ========================================

    def submit(self, text: str) -> Optional[ChatClientError]:
        """
        Encode ``text`` and dispatch it.

        Returns None once the message is queued, otherwise the reason it was
        not sent (validation error or NotConnectedError).
        """
        try:
            message = encode(text)
            self.manager.send(message)
        except ChatClientError as e:
            logger.debug(f"Input not sent: {e}")
            return e

        if isinstance(message, Ping) and message.token:
            self._remember_ping(message.token)
        return None

    def _remember_ping(self, token: str) -> None:
        now = time.monotonic()
        self._pending_pings = {
            t: sent for t, sent in self._pending_pings.items() if now - sent < PING_EXPIRY_SECONDS and t != token
        }
        self._pending_pings[token] = now
        while len(self._pending_pings) > MAX_PENDING_PINGS:
            del self._pending_pings[next(iter(self._pending_pings))]

    def set_server_url(self, url: str) -> Optional[ChatClientError]:
        """Validate and persist a new server URL; takes effect on the next connect."""
        url = url.strip()
        if not is_ws_url(url):
            return InvalidServerUrlError(url)
        self.settings.server_url = url
        self._save()
        return None

    # ========================================
    #           LIFECYCLE
    # ========================================

    def connect(self, url: Optional[str] = None) -> asyncio.Task:
        """
        Schedule a connect to ``url`` (or the stored server URL).

        An invalid ``url`` is reported as a ``ConnectFailed`` event and the
        returned task resolves to False.
        """
        if url is not None and url.strip() != self.settings.server_url:
            error = self.set_server_url(url)
            if error is not None:
                logger.warning(f"Not connecting: {error}")
                self.manager.events.put_nowait(ConnectFailed(url=url.strip(), reason=str(error)))
                return self._track(_rejected())
        return self._track(self.manager.connect(self.settings.server_url, self.settings.preferred_name))

    def disconnect(self) -> asyncio.Task:
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None
        return self._track(self.manager.disconnect())

    def reconnect(self, max_retries: int = 5, base_delay: float = 1.0) -> asyncio.Task:
        """Explicit reconnect with bounded backoff, re-asserting the preferred name."""
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return self._reconnect_task
        self._reconnect_task = self._track(
            self.manager.reconnect(max_retries, base_delay, preferred_name=self.settings.preferred_name)
        )
        return self._reconnect_task

    async def close(self) -> None:
        """Disconnect and wait for outstanding lifecycle tasks."""
        await self.disconnect()
        for task in list(self._background_tasks):
            task.cancel()
        await asyncio.gather(*self._background_tasks, return_exceptions=True)

    def _track(self, coro) -> asyncio.Task:
        """Keep a strong reference to background tasks until completion."""
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    # ========================================
    #           OUTPUT
    # ========================================

    def poll(self) -> List[Event]:
        """Drain every event available right now. Never waits."""
        drained: List[Event] = []
        while True:
            try:
                event = self.manager.events.get_nowait()
            except asyncio.QueueEmpty:
                return drained
            drained.extend(self._process(event))

    async def events(self) -> AsyncIterator[Event]:
        """Async stream of events; runs until the consumer stops iterating."""
        while True:
            event = await self.manager.events.get()
            for item in self._process(event):
                yield item

    def _process(self, event: Event) -> List[Event]:
        result: List[Event] = [event]
        if isinstance(event, AckName):
            if event.name != self.settings.username:
                self.settings.username = event.name
                failure = self._save(emit=False)
                if failure is not None:
                    result.append(failure)
        elif isinstance(event, Pong) and event.token in self._pending_pings:
            started = self._pending_pings.pop(event.token)
            result.append(PingRoundTrip(token=event.token, roundtrip_ms=(time.monotonic() - started) * 1000.0))
        elif isinstance(event, StateChanged) and event.state.phase is ConnectionPhase.DISCONNECTED:
            self._pending_pings.clear()
        return result

    def _save(self, emit: bool = True) -> Optional[SettingsSaveFailed]:
        try:
            self.store.save(self.settings)
        except SettingsSaveError as e:
            failure = SettingsSaveFailed(reason=str(e))
            if emit:
                self.manager.events.put_nowait(failure)
            return failure
        return None


async def _rejected() -> bool:
    return False
