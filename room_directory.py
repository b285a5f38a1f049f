import asyncio
from typing import Dict, FrozenSet, List, Set

from connection import Connection, ConnectionState
from logging_config import get_logger

logger = get_logger(__name__)


class RoomDirectory:
    """Tracks open connections and the room each one belongs to.

    Every mutation runs to completion without awaiting, so on a single event
    loop no coroutine can observe a member set while it is being changed.
    A room exists only while it has at least one member.
    """

    def __init__(self):
        # Format: {room_id: {connection, ...}}
        self._rooms: Dict[str, Set[Connection]] = {}
        self._connections: Set[Connection] = set()
        logger.info("Initializing RoomDirectory")

    def register(self, connection: Connection):
        connection.open()
        self._connections.add(connection)
        logger.debug(f"Registered connection {connection.connection_id} ({len(self._connections)} open)")

    def unregister(self, connection: Connection):
        """Closed transition: drop the connection from its room and from the open set."""
        connection.mark_closed()
        self.leave(connection)
        if connection in self._connections:
            self._connections.discard(connection)
            logger.debug(f"Unregistered connection {connection.connection_id} ({len(self._connections)} open)")

    @property
    def connections(self) -> List[Connection]:
        return list(self._connections)

    def join(self, connection: Connection, room_id: str):
        if connection.state is not ConnectionState.OPEN:
            logger.debug(f"Ignoring join to room {room_id} from closed connection {connection.connection_id}")
            return
        if connection.room == room_id and connection in self._rooms.get(room_id, ()):
            logger.debug(f"Connection {connection.connection_id} already in room {room_id}")
            return
        self.leave(connection)
        members = self._rooms.get(room_id)
        if members is None:
            members = self._rooms[room_id] = set()
            logger.info(f"Room {room_id} created")
        members.add(connection)
        connection.room = room_id
        logger.debug(f"Connection {connection.connection_id} joined room {room_id} ({len(members)} members)")

    def leave(self, connection: Connection):
        room_id = connection.room
        if room_id is None:
            return
        connection.room = None
        members = self._rooms.get(room_id)
        if members is None:
            return
        members.discard(connection)
        logger.debug(f"Connection {connection.connection_id} left room {room_id} ({len(members)} members)")
        if not members:
            del self._rooms[room_id]
            logger.info(f"Room {room_id} is empty and deleted.")

    def members(self, room_id: str) -> FrozenSet[Connection]:
        return frozenset(self._rooms.get(room_id, ()))

    def has_room(self, room_id: str) -> bool:
        return room_id in self._rooms

    @property
    def room_ids(self) -> List[str]:
        return list(self._rooms)

    async def broadcast(self, room_id: str, message: str) -> int:
        """Send ``message`` to every open member of ``room_id``, sender included.

        Closing or closed members are skipped; their close handler reconciles
        membership. Returns the number of members the message was handed to.
        """
        recipients = [conn for conn in self._rooms.get(room_id, ()) if conn.is_open]
        if not recipients:
            return 0

        results = await asyncio.gather(
            *(conn.send_text(message) for conn in recipients), return_exceptions=True
        )
        delivered = 0
        for conn, result in zip(recipients, results):
            if isinstance(result, Exception):
                logger.warning(f"Error sending to connection {conn.connection_id} in room {room_id}: {result}")
            else:
                delivered += 1
        logger.debug(f"Broadcasted message to {delivered}/{len(recipients)} connections in room {room_id}")
        return delivered
