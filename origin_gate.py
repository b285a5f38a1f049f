from typing import Iterable, Optional, Tuple

from fastapi import WebSocket, status
from fastapi.responses import PlainTextResponse
from logging_config import get_logger

logger = get_logger(__name__)

DENIAL_RESPONSE_EXTENSION = "websocket.http.response"


class OriginGate:
    """Admit an upgrade request when its Origin is absent or exactly on the allow-list."""

    def __init__(self, allowed_origins: Iterable[str]):
        # ordered, de-duplicated, blanks dropped
        self.allowed_origins: Tuple[str, ...] = tuple(dict.fromkeys(o for o in allowed_origins if o))

    def admits(self, origin: Optional[str]) -> bool:
        if not origin:
            return True
        return origin in self.allowed_origins

    async def reject(self, websocket: WebSocket):
        """Refuse the handshake with a 401. Must be called before ``accept``."""
        origin = websocket.headers.get("origin")
        logger.info(f"Connection from origin {origin} REJECTED.")
        if DENIAL_RESPONSE_EXTENSION in websocket.scope.get("extensions", {}):
            await websocket.send_denial_response(
                PlainTextResponse("Unauthorized", status_code=status.HTTP_401_UNAUTHORIZED)
            )
        else:
            # Closing before accept makes the server answer the upgrade with 403.
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
