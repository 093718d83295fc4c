from .channel import SessionChannel
from .models import (
    AGENT_ERROR,
    AGENT_RESPONSE,
    ChatMessage,
    ConnectionStatus,
    InboundEvent,
    Sender,
    SessionState,
)
from .transport import Transport, WebSocketTransport

__all__ = [
    "SessionChannel",
    "ChatMessage",
    "ConnectionStatus",
    "InboundEvent",
    "Sender",
    "SessionState",
    "Transport",
    "WebSocketTransport",
    "AGENT_RESPONSE",
    "AGENT_ERROR",
]
