import json
import time
import uuid
from enum import Enum
from typing import Callable, Optional

from fastapi import WebSocket
from fastapi.websockets import WebSocketState
from logging_config import get_logger

logger = get_logger(__name__)

PING_FRAME = json.dumps({"type": "ping"})

# Close code sent when the liveness monitor gives up on a peer ("going away").
TERMINATE_CLOSE_CODE = 1001


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class Connection:
    """One admitted client session.

    ``room`` is owned by the RoomDirectory; nothing else should assign it.
    ``alive`` is only touched by the liveness monitor and by probe acknowledgments.
    """

    def __init__(self, websocket: WebSocket, clock: Callable[[], float] = time.monotonic):
        self.connection_id = str(uuid.uuid4())
        self.websocket = websocket
        self.clock = clock
        self.state = ConnectionState.CONNECTING
        self.alive = False
        self.last_message_at: Optional[float] = None
        self.room: Optional[str] = None

    def __repr__(self):
        return f"<Connection {self.connection_id[:8]} state={self.state.value} room={self.room!r}>"

    def open(self):
        if self.state is not ConnectionState.CONNECTING:
            raise RuntimeError(f"Cannot open connection {self.connection_id} in state {self.state.value}")
        self.state = ConnectionState.OPEN
        self.alive = True
        self.last_message_at = None
        self.room = None
        logger.debug(f"Connection {self.connection_id} is open")

    def mark_closed(self) -> bool:
        """Move to CLOSED. Returns False if the connection was already closed."""
        if self.state is ConnectionState.CLOSED:
            return False
        self.state = ConnectionState.CLOSED
        return True

    @property
    def is_open(self) -> bool:
        if self.state is not ConnectionState.OPEN:
            return False
        return (
            self.websocket.application_state == WebSocketState.CONNECTED
            and self.websocket.client_state == WebSocketState.CONNECTED
        )

    def seconds_since_last_message(self) -> Optional[float]:
        if self.last_message_at is None:
            return None
        return self.clock() - self.last_message_at

    def record_message(self):
        self.last_message_at = self.clock()

    def acknowledge_probe(self):
        self.alive = True

    async def send_text(self, text: str):
        await self.websocket.send_text(text)

    async def probe(self):
        """Clear the liveness flag and ask the peer to acknowledge."""
        self.alive = False
        await self.websocket.send_text(PING_FRAME)

    async def terminate(self, code: int = TERMINATE_CLOSE_CODE):
        """Close the transport without waiting on the peer."""
        self.mark_closed()
        if (
            self.websocket.application_state != WebSocketState.CONNECTED
            or self.websocket.client_state != WebSocketState.CONNECTED
        ):
            return
        try:
            await self.websocket.close(code=code)
        except (RuntimeError, OSError) as e:
            logger.debug(f"Error closing WebSocket for connection {self.connection_id}: {e}")
