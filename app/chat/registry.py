"""
In-process registry of live WebSocket connections.

One entry per user: the Channels ``channel_name`` of the user's current
consumer plus the chat rooms that consumer has joined. A user that opens a
second connection replaces the first entry (last connect wins).

The registry is owned by the chat AppConfig and handed to consumers via
``ChatConsumer.as_asgi(registry=...)``; REST code reaches it through
``chat.apps.get_registry()``. It is rebuilt empty on every process start.

Usage:
    registry = ConnectionRegistry()
    registry.register(user.id, self.channel_name)
    if registry.is_subscribed(user.id, chat.id):
        ...
    registry.unregister(user.id, self.channel_name)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """A user's live connection."""

    user_id: str
    channel_name: str
    rooms: set[str] = field(default_factory=set)


class ConnectionRegistry:
    """
    Map of user id to their current Connection.

    User and chat ids are normalised to strings, so UUID objects and their
    string forms address the same entry. Access is guarded by a lock because
    REST views read the registry from worker threads.
    """

    def __init__(self):
        self._connections: dict[str, Connection] = {}
        self._lock = threading.Lock()

    def register(self, user_id, channel_name: str) -> Connection:
        """Record ``channel_name`` as the user's connection, replacing any previous one."""
        key = str(user_id)
        connection = Connection(user_id=key, channel_name=channel_name)
        with self._lock:
            previous = self._connections.get(key)
            self._connections[key] = connection

        if previous is not None and previous.channel_name != channel_name:
            logger.info(
                f"User {key} reconnected; replacing connection {previous.channel_name}"
            )
        return connection

    def unregister(self, user_id, channel_name: str | None = None) -> bool:
        """
        Remove the user's entry.

        With ``channel_name`` the entry is removed only if it still belongs
        to that connection, so a stale socket closing after a reconnect
        leaves the newer entry in place.

        Returns:
            True if an entry was removed
        """
        key = str(user_id)
        with self._lock:
            current = self._connections.get(key)
            if current is None:
                return False
            if channel_name is not None and current.channel_name != channel_name:
                return False
            del self._connections[key]
            return True

    def lookup(self, user_id) -> Connection | None:
        with self._lock:
            return self._connections.get(str(user_id))

    def list_all(self) -> list[tuple[str, Connection]]:
        with self._lock:
            return list(self._connections.items())

    def is_connected(self, user_id) -> bool:
        return self.lookup(user_id) is not None

    def join_room(self, user_id, chat_id) -> bool:
        """Mark the user's connection as subscribed to the chat room."""
        with self._lock:
            connection = self._connections.get(str(user_id))
            if connection is None:
                return False
            connection.rooms.add(str(chat_id))
            return True

    def leave_room(self, user_id, chat_id) -> None:
        with self._lock:
            connection = self._connections.get(str(user_id))
            if connection is not None:
                connection.rooms.discard(str(chat_id))

    def is_subscribed(self, user_id, chat_id) -> bool:
        with self._lock:
            connection = self._connections.get(str(user_id))
            return connection is not None and str(chat_id) in connection.rooms

    def clear(self) -> None:
        with self._lock:
            self._connections.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)
