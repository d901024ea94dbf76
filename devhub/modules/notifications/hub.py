import asyncio
import threading
from typing import Any, Dict, Optional, Protocol, Set

from fastapi import WebSocket
from loguru import logger


class NotificationEmitter(Protocol):
    def publish(self, user_id: str, event: str, payload: Any) -> None:
        ...


class _Client:
    """A connected socket plus the outbound queue its writer task drains."""

    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop):
        self.websocket = websocket
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue()
        self.rooms: Set[str] = set()

    def push(self, message: Dict[str, Any]) -> None:
        # publish() may run on a threadpool worker; hand off to the socket's loop
        try:
            self.loop.call_soon_threadsafe(self.queue.put_nowait, message)
        except RuntimeError:
            logger.debug("Dropping push for a socket whose loop is closed")


class RoomHub:
    """
    In-process push channel.
    Sockets join rooms keyed by user id; publish() fans out to a room.
    Delivery is best-effort: no acknowledgement, no replay.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clients: Dict[int, _Client] = {}
        self._rooms: Dict[str, Set[int]] = {}

    # ---------- socket lifecycle ----------

    def attach(self, websocket: WebSocket) -> _Client:
        client = _Client(websocket, asyncio.get_running_loop())
        with self._lock:
            self._clients[id(websocket)] = client
        return client

    def detach(self, websocket: WebSocket) -> None:
        with self._lock:
            client = self._clients.pop(id(websocket), None)
            if client is None:
                return
            for room in client.rooms:
                members = self._rooms.get(room)
                if members is None:
                    continue
                members.discard(id(websocket))
                if not members:
                    del self._rooms[room]

    def join(self, websocket: WebSocket, room: str) -> None:
        with self._lock:
            client = self._clients.get(id(websocket))
            if client is None:
                return
            client.rooms.add(room)
            self._rooms.setdefault(room, set()).add(id(websocket))
        logger.info(f"Socket joined room | room={room}")

    # ---------- fan-out ----------

    def publish(self, user_id: str, event: str, payload: Any) -> None:
        message = {"event": event, "data": payload}
        with self._lock:
            targets = [self._clients[k] for k in self._rooms.get(str(user_id), ()) if k in self._clients]
        for client in targets:
            client.push(message)
        logger.debug(f"Published {event} | room={user_id} sockets={len(targets)}")

    def broadcast(self, event: str, payload: Any, exclude: Optional[WebSocket] = None) -> None:
        message = {"event": event, "data": payload}
        with self._lock:
            targets = [c for k, c in self._clients.items() if exclude is None or k != id(exclude)]
        for client in targets:
            client.push(message)

    def room_size(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, ()))


_HUB = RoomHub()


def get_emitter() -> NotificationEmitter:
    return _HUB


def get_hub() -> RoomHub:
    return _HUB
