"""
In-process WebSocket hub

Every connected dashboard joins its role room (admin, doctor, patient, receptionist)
and its identity room (doctor-<id>, patient-<id>, ...). emit() is synchronous and
thread-safe: services call it from request worker threads, delivery happens on the
event loop that owns the socket.
"""

import asyncio
import json
import logging
import threading
from collections import defaultdict
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Per-connection backlog; a slow client loses events past this point
MAX_PENDING_MESSAGES = 200


def encode_message(event: str, data: Any, room: Optional[str] = None) -> str:
    return json.dumps({"event": event, "room": room, "data": data}, default=str)


class HubConnection:
    """One subscribed socket: an outbound queue bound to the loop that serves it"""

    def __init__(self, user_id: int, role: str, loop: asyncio.AbstractEventLoop):
        self.user_id = user_id
        self.role = role
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=MAX_PENDING_MESSAGES)
        self.rooms = {role, f"{role}-{user_id}"}
        self.dropped = 0

    def _offer(self, message: str) -> None:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"⚠️ Dropping event for {self.role}-{self.user_id}: backlog full")

    def deliver(self, message: str) -> None:
        self.loop.call_soon_threadsafe(self._offer, message)


class WebSocketHub:
    """Room-addressable fan-out to the sockets connected to this process"""

    def __init__(self):
        self._rooms: dict[str, set[HubConnection]] = defaultdict(set)
        self._connections: set[HubConnection] = set()
        # Request threads emit while the event loop registers and unregisters sockets
        self._lock = threading.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    def register(self, user_id: int, role: str, loop: Optional[asyncio.AbstractEventLoop] = None) -> HubConnection:
        connection = HubConnection(user_id, role, loop or asyncio.get_running_loop())
        with self._lock:
            self._connections.add(connection)
            for room in connection.rooms:
                self._rooms[room].add(connection)
        logger.info(f"✅ {role}-{user_id} connected. Total: {len(self._connections)}")
        return connection

    def unregister(self, connection: HubConnection) -> None:
        with self._lock:
            self._connections.discard(connection)
            for room in connection.rooms:
                members = self._rooms.get(room)
                if members is not None:
                    members.discard(connection)
                    if not members:
                        del self._rooms[room]
        logger.info(f"🔌 {connection.role}-{connection.user_id} disconnected. Total: {len(self._connections)}")

    def emit(self, event: str, data: Any, room: Optional[str] = None) -> int:
        """Queue an event for everyone (room=None) or one room; returns the number of recipients"""
        message = encode_message(event, data, room)
        with self._lock:
            targets = list(self._connections) if room is None else list(self._rooms.get(room, ()))
        delivered = 0
        for connection in targets:
            try:
                connection.deliver(message)
                delivered += 1
            except RuntimeError as e:
                # Loop already closed - the socket is gone
                logger.warning(f"⚠️ Removed {connection.role}-{connection.user_id} due to error: {e}")
                self.unregister(connection)
        return delivered


hub = WebSocketHub()


def get_hub() -> WebSocketHub:
    return hub
