from pydantic import BaseModel, Field
from typing import Any, Dict, Literal


class JoinMessage(BaseModel):
    type: Literal["join"]
    room: str = Field(min_length=1)


class ChatMessage(BaseModel):
    type: Literal["chat"]
    # Forwarded as-is apart from "text"; sender and any extra fields (e.g. imageUrl) are opaque.
    payload: Dict[str, Any]


class PongMessage(BaseModel):
    type: Literal["pong"]
