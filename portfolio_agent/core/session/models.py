from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Sender(str, Enum):
    USER = "user"
    AGENT = "agent"


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ChatMessage(BaseModel):
    """One chat turn. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    text: str
    sender: Sender
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are read as UTC so transcripts stay orderable
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class SessionState(BaseModel):
    """Snapshot of a session handed to observers."""

    model_config = ConfigDict(frozen=True)

    connection_status: ConnectionStatus = ConnectionStatus.CONNECTING
    is_agent_thinking: bool = False
    transcript: Tuple[ChatMessage, ...] = ()


class InboundEvent(BaseModel):
    """Structured frame received from the agent server."""

    model_config = ConfigDict(extra="allow")

    type: str
    message: str | None = None


AGENT_RESPONSE = "agent_response"
AGENT_ERROR = "agent_error"
