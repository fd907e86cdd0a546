"""Push-channel fan-out to connected observers.

Every observer WebSocket is wrapped in a Connection with its own outbound
queue. Broadcasting is a synchronous enqueue onto every open connection, so
a fan-out never interleaves with another request's logic; each connection's
``pump`` task does the actual network writes. Delivery is best-effort: an
observer that is gone or too far behind misses the event and recovers from
the ``init`` snapshot on reconnect.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi.websockets import WebSocketState
from pydantic import BaseModel

from inoutboard.models import Ping

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

GOING_AWAY = 1001

_PING = Ping().model_dump_json()


class Connection:
    """A connected observer.

    Attributes:
        websocket: The accepted Starlette WebSocket.
        client_id: Unique identifier used in logs.
        queue: Serialized messages waiting to be written. ``None`` is the
            close sentinel.
        awaiting_pong: Set when a probe is sent, cleared by the observer's
            pong.

    """

    def __init__(self, websocket: Any, *, queue_size: int = 256) -> None:
        self.websocket = websocket
        self.client_id = uuid.uuid4().hex[:12]
        self.queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)
        self.awaiting_pong = False
        self._terminated = False
        self._sending = False
        self._pump_task: asyncio.Task[None] | None = None

    @property
    def is_open(self) -> bool:
        return (
            not self._terminated
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def send(self, message: str) -> bool:
        """Queue a serialized message; False if the queue is full."""
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def mark_alive(self) -> None:
        self.awaiting_pong = False

    def terminate(self) -> None:
        """Discard pending messages and make ``pump`` close the socket.

        A pump blocked writing to an unresponsive peer never reaches the
        sentinel, so it is cancelled instead and closes from there.
        """
        if self._terminated:
            return
        self._terminated = True
        while not self.queue.empty():
            self.queue.get_nowait()
        self.queue.put_nowait(None)
        if self._sending and self._pump_task is not None:
            self._pump_task.cancel()

    async def pump(self) -> None:
        """Write queued messages to the socket until terminated."""
        self._pump_task = asyncio.current_task()
        try:
            while True:
                message = await self.queue.get()
                if message is None:
                    break
                self._sending = True
                try:
                    await self.websocket.send_text(message)
                finally:
                    self._sending = False
        except asyncio.CancelledError:
            if not self._terminated:
                raise
        if self.websocket.application_state == WebSocketState.CONNECTED:
            await self.websocket.close(code=GOING_AWAY)


class Broadcaster:
    """Owns the set of live observer connections and fans events out to them.

    The liveness monitor is part of the broadcaster's lifecycle: ``start``
    launches it, ``stop`` cancels it and terminates every connection.
    """

    def __init__(self) -> None:
        self._connections: set[Connection] = set()
        self._monitor: LivenessMonitor | None = None

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def connections(self) -> frozenset[Connection]:
        return frozenset(self._connections)

    def register(self, conn: Connection) -> None:
        self._connections.add(conn)
        logger.info(
            "observer %s connected (%d live)", conn.client_id, len(self._connections)
        )

    def unregister(self, conn: Connection) -> None:
        if conn in self._connections:
            self._connections.discard(conn)
            logger.info(
                "observer %s disconnected (%d live)",
                conn.client_id,
                len(self._connections),
            )

    def broadcast(self, event: BaseModel) -> int:
        """Serialize ``event`` once and queue it on every open connection.

        Returns:
            Number of connections the event was queued for.

        """
        message = event.model_dump_json()
        delivered = 0
        for conn in self.connections():
            if not conn.is_open:
                continue
            if conn.send(message):
                delivered += 1
            else:
                logger.warning(
                    "observer %s send queue full, dropping %s",
                    conn.client_id,
                    getattr(event, "type", type(event).__name__),
                )
        return delivered

    def start(self, interval: float, *, sleep_fn: SleepFn = asyncio.sleep) -> None:
        if self._monitor is not None:
            return
        self._monitor = LivenessMonitor(self, interval, sleep_fn=sleep_fn)
        self._monitor.start()

    async def stop(self) -> None:
        if self._monitor is not None:
            await self._monitor.stop()
            self._monitor = None
        for conn in self.connections():
            conn.terminate()
            self.unregister(conn)


class LivenessMonitor:
    """Probes every observer on a fixed interval and evicts silent ones.

    An observer that has not answered the previous probe by the next tick is
    terminated and unregistered, so a connection survives at most two
    intervals without a pong.
    """

    def __init__(
        self,
        broadcaster: Broadcaster,
        interval: float,
        *,
        sleep_fn: SleepFn = asyncio.sleep,
    ) -> None:
        self.broadcaster = broadcaster
        self.interval = interval
        self._sleep_fn = sleep_fn
        self._task: asyncio.Task[None] | None = None

    def tick(self) -> list[Connection]:
        """Run one probe round; returns the evicted connections."""
        evicted: list[Connection] = []
        for conn in self.broadcaster.connections():
            if conn.awaiting_pong:
                logger.warning("observer %s missed a ping, evicting", conn.client_id)
                conn.terminate()
                self.broadcaster.unregister(conn)
                evicted.append(conn)
                continue
            conn.awaiting_pong = True
            conn.send(_PING)
        return evicted

    async def run(self) -> None:
        while True:
            await self._sleep_fn(self.interval)
            self.tick()

    def start(self) -> None:
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
