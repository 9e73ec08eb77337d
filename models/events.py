"""
WebSocket Event Model
Envelope for everything exchanged on the /session websocket
"""
from typing import Any
from pydantic import BaseModel


class CookWebEvent(BaseModel):
    """
    CookWebEvent is sent and received over the session websocket
    type is "system" for server notices, "session" for monitor output
    and "user" for client requests
    """
    type: str  # "system", "session", "user"
    event: str
    data: Any = None
