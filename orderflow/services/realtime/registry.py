"""Live session registry.

Tracks connected observers and their channel membership. Holds no business
data and nothing here survives a restart: reconnecting observers subscribe
again and receive a fresh snapshot.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Set

from orderflow.services.realtime.events import Channel

logger = logging.getLogger(__name__)


class Sender(Protocol):
    """Anything that can push a JSON frame to an observer (e.g. a WebSocket)."""

    async def send_json(self, data: Any) -> None:
        ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        ...


class Connection:
    """A connected observer."""

    def __init__(self, connection_id: str, sender: Sender):
        self.connection_id = connection_id
        self.sender = sender
        self.channels: Set[Channel] = set()
        self.connected_at = datetime.now(timezone.utc)
        # Serializes frames to this observer: snapshot first, then deltas
        self.send_lock = asyncio.Lock()

    def __repr__(self) -> str:
        channels = ",".join(sorted(channel.value for channel in self.channels))
        return f"<Connection {self.connection_id} [{channels}]>"


class SessionRegistry:
    """In-memory index of connections by id and by channel."""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._channels: Dict[Channel, Set[str]] = {channel: set() for channel in Channel}

    def register(self, connection_id: str, sender: Sender) -> Connection:
        """Register a new connection with no channel membership."""
        if connection_id in self._connections:
            raise ValueError(f"Connection {connection_id} is already registered")
        connection = Connection(connection_id, sender)
        self._connections[connection_id] = connection
        logger.info(f"[REGISTRY] Registered connection {connection_id} - total: {len(self._connections)}")
        return connection

    def subscribe(self, connection_id: str, channel: str) -> Connection:
        """
        Add a connection to a channel.

        Raises:
            KeyError: unknown connection
            ValueError: unknown channel
        """
        channel = Channel(channel)
        connection = self._connections[connection_id]
        connection.channels.add(channel)
        self._channels[channel].add(connection_id)
        logger.info(f"[REGISTRY] Connection {connection_id} subscribed to {channel.value}")
        return connection

    def unsubscribe(self, connection_id: str, channel: str) -> None:
        """Remove a connection from one channel."""
        channel = Channel(channel)
        self._channels[channel].discard(connection_id)
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.channels.discard(channel)

    def unregister(self, connection_id: str) -> Optional[Connection]:
        """Remove a connection from the registry and from every channel."""
        connection = self._connections.pop(connection_id, None)
        for members in self._channels.values():
            members.discard(connection_id)
        if connection is not None:
            logger.info(
                f"[REGISTRY] Unregistered connection {connection_id} - total: {len(self._connections)}"
            )
        return connection

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def members_of(self, channel: str) -> List[Connection]:
        """Current members of a channel."""
        return [
            self._connections[connection_id]
            for connection_id in sorted(self._channels[Channel(channel)])
            if connection_id in self._connections
        ]

    def connection_count(self) -> int:
        return len(self._connections)

    def clear(self) -> None:
        """Drop every connection."""
        self._connections.clear()
        for members in self._channels.values():
            members.clear()
