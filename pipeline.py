import json
from typing import Any, Dict

from pydantic import ValidationError

from connection import Connection
from constants import MESSAGE_COOLDOWN_MS
from logging_config import get_logger
from room_directory import RoomDirectory
from schemas.messages import ChatMessage, JoinMessage, PongMessage

logger = get_logger(__name__)

_HTML_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
)


def sanitize(text: Any) -> str:
    """Escape ``& < > "`` in a single pass. Anything that is not a string becomes ''."""
    if not isinstance(text, str):
        return ""
    for char, entity in _HTML_ESCAPES:
        text = text.replace(char, entity)
    return text


def sanitize_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``payload`` with a truthy ``text`` field escaped; every other field is untouched."""
    sanitized = dict(payload)
    if sanitized.get("text"):
        sanitized["text"] = sanitize(sanitized["text"])
    return sanitized


def _reject_constant(name: str):
    # NaN and Infinity are not JSON; browsers would choke on the rebroadcast.
    raise ValueError(f"Invalid JSON constant {name}")


class MessagePipeline:
    """decode -> validate -> rate-limit -> sanitize -> fan-out, one frame at a time.

    Bad frames are logged and dropped. Nothing here ever closes the connection.
    """

    def __init__(self, directory: RoomDirectory, cooldown_ms: int = MESSAGE_COOLDOWN_MS):
        self.directory = directory
        self.cooldown = cooldown_ms / 1000.0
        self._handlers = {
            "join": self.handle_join,
            "chat": self.handle_chat,
            "pong": self.handle_pong,
        }

    async def handle(self, connection: Connection, raw: str):
        try:
            data = json.loads(raw, parse_constant=_reject_constant)
        except (ValueError, TypeError, RecursionError) as e:
            logger.warning(f"Invalid JSON from connection {connection.connection_id}: {e}")
            return
        if not isinstance(data, dict):
            logger.warning(f"Dropping non-object frame from connection {connection.connection_id}")
            return

        kind = data.get("type")
        handler = self._handlers.get(kind) if isinstance(kind, str) else None
        if handler is None:
            logger.debug(f"Ignoring message type {kind!r} from connection {connection.connection_id}")
            return

        try:
            await handler(connection, data)
        except ValidationError as e:
            logger.warning(
                f"Malformed {data.get('type')} message from connection {connection.connection_id}: "
                f"{e.error_count()} validation error(s)"
            )

    async def handle_join(self, connection: Connection, data: dict):
        message = JoinMessage.model_validate(data)
        self.directory.join(connection, message.room)

    async def handle_chat(self, connection: Connection, data: dict) -> int:
        message = ChatMessage.model_validate(data)

        elapsed = connection.seconds_since_last_message()
        if elapsed is not None and elapsed < self.cooldown:
            logger.debug(f"Rate limited connection {connection.connection_id} ({elapsed * 1000:.0f} ms since last message)")
            return 0
        connection.record_message()

        room_id = connection.room
        if room_id is None or not self.directory.has_room(room_id):
            logger.debug(f"Dropping chat from connection {connection.connection_id}: not in a room")
            return 0

        payload = sanitize_payload(message.payload)
        return await self.directory.broadcast(room_id, json.dumps(payload))

    async def handle_pong(self, connection: Connection, data: dict):
        PongMessage.model_validate(data)
        connection.acknowledge_probe()
