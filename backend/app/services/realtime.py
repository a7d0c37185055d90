"""Room-addressed publish/subscribe over persistent connections."""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket
from sqlalchemy.orm import Session

from app.schemas.user import UserStatus
from app.services.chat_service import chat_service
from app.services.user_service import user_service

logger = logging.getLogger(__name__)

NEW_MESSAGE_EVENT = "newMessage"
CONNECTED_EVENT = "connected"
ERROR_EVENT = "error"


def chat_room(chat_id: int) -> str:
    return f"chat:{chat_id}"


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


def frame(event: str, data: Any) -> Dict[str, Any]:
    return {"event": event, "data": data}


class Subscriber(ABC):
    """A live connection as seen by the channel.

    ``deliver`` must not block: it is called from request worker threads.
    """

    def __init__(self, user_id: int):
        self.sid = uuid.uuid4().hex
        self.user_id = user_id

    @abstractmethod
    def deliver(self, message: Dict[str, Any]) -> None:
        ...

    def __repr__(self):
        return f"<{type(self).__name__}(sid={self.sid}, user_id={self.user_id})>"


class WebSocketSubscriber(Subscriber):
    """Queues outbound frames onto the connection's event loop; ``pump`` writes them."""

    def __init__(self, websocket: WebSocket, user_id: int, loop: asyncio.AbstractEventLoop):
        super().__init__(user_id)
        self.websocket = websocket
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()

    def deliver(self, message: Dict[str, Any]) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, message)

    async def pump(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self.websocket.send_json(message)
            except Exception as exc:
                logger.info("Stopped writing to %r: %s", self, exc)
                return


class RealtimeChannel:
    """
    Maps room names to subscribed connections.

    Each chat has room ``chat:<id>``; each user has a personal room
    ``user:<id>``. Delivery is at-most-once: only connections subscribed at
    publish time receive a frame, and nothing is replayed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rooms: Dict[str, Set[Subscriber]] = {}
        self._memberships: Dict[str, Set[str]] = {}
        self._subscribers: Dict[str, Subscriber] = {}
        self._closed = False

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @property
    def closed(self) -> bool:
        return self._closed

    def join(self, subscriber: Subscriber, room: str) -> None:
        with self._lock:
            if subscriber.sid not in self._subscribers:
                return
            self._rooms.setdefault(room, set()).add(subscriber)
            self._memberships.setdefault(subscriber.sid, set()).add(room)

    def leave(self, subscriber: Subscriber, room: str) -> None:
        with self._lock:
            self._discard(subscriber, room)

    def _discard(self, subscriber: Subscriber, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(subscriber)
            if not members:
                del self._rooms[room]
        rooms = self._memberships.get(subscriber.sid)
        if rooms is not None:
            rooms.discard(room)

    def rooms_of(self, subscriber: Subscriber) -> List[str]:
        with self._lock:
            return sorted(self._memberships.get(subscriber.sid, ()))

    def subscribers(self, room: str) -> List[Subscriber]:
        with self._lock:
            return list(self._rooms.get(room, ()))

    def publish(self, room: str, event: str, data: Any) -> int:
        """
        Hand a frame to every connection currently in ``room``

        Returns:
            Number of connections the frame was handed to
        """
        targets = self.subscribers(room)
        delivered = 0
        message = frame(event, data)
        for subscriber in targets:
            try:
                subscriber.deliver(message)
                delivered += 1
            except RuntimeError as exc:
                # Event loop of a dropped connection already closed
                logger.warning("Dropping %s frame for %r: %s", event, subscriber, exc)
        return delivered

    def connect(self, db: Session, subscriber: Subscriber) -> List[str]:
        """
        Register an authenticated connection, subscribe it to its personal
        room and every chat the user belongs to, and mark the user online

        Returns:
            Rooms the connection was subscribed to
        """
        if self._closed:
            raise RuntimeError("Realtime channel is closed")

        with self._lock:
            self._subscribers[subscriber.sid] = subscriber
            self._memberships[subscriber.sid] = set()

        chat_ids = chat_service.chat_ids_for_user(db, subscriber.user_id)
        # Commits, so the session holds no open transaction afterwards
        user_service.set_presence(db, subscriber.user_id, UserStatus.ONLINE)

        self.join(subscriber, user_room(subscriber.user_id))
        for chat_id in chat_ids:
            self.join(subscriber, chat_room(chat_id))

        rooms = self.rooms_of(subscriber)
        logger.info("User %s connected (%s) rooms=%s", subscriber.user_id, subscriber.sid, rooms)
        return rooms

    def disconnect(self, db: Optional[Session], subscriber: Subscriber) -> None:
        """Drop every subscription of the connection and mark the user away."""
        with self._lock:
            for room in list(self._memberships.get(subscriber.sid, ())):
                self._discard(subscriber, room)
            self._memberships.pop(subscriber.sid, None)
            known = self._subscribers.pop(subscriber.sid, None) is not None

        if known and db is not None:
            user_service.set_presence(db, subscriber.user_id, UserStatus.AWAY)
        logger.info("User %s disconnected (%s)", subscriber.user_id, subscriber.sid)

    def close(self) -> None:
        """Forget all connections; further connects are refused."""
        with self._lock:
            self._closed = True
            self._rooms.clear()
            self._memberships.clear()
            self._subscribers.clear()
        logger.info("Realtime channel closed")
