"""In-memory persistence sink for chat turns."""

import asyncio
from typing import List, Protocol, runtime_checkable

from ..core.session.models import ChatMessage


@runtime_checkable
class MessageStore(Protocol):
    """Durable sink for chat turns with ordered retrieval."""

    async def append(self, message: ChatMessage) -> None: ...

    async def list(self) -> List[ChatMessage]: ...


class InMemoryMessageStore:
    """Ordered, append-only message store kept for the lifetime of the process."""

    def __init__(self, max_messages: int = 10_000) -> None:
        self._messages: List[ChatMessage] = []
        self._lock = asyncio.Lock()
        self.max_messages = max_messages

    async def append(self, message: ChatMessage) -> None:
        async with self._lock:
            self._messages.append(message)
            overflow = len(self._messages) - self.max_messages
            if overflow > 0:
                del self._messages[:overflow]

    async def list(self) -> List[ChatMessage]:
        async with self._lock:
            return sorted(self._messages, key=lambda m: m.timestamp)

    def __len__(self) -> int:
        return len(self._messages)


_store: InMemoryMessageStore | None = None


def get_message_store() -> InMemoryMessageStore:
    """Get the process-wide message store."""
    global _store
    if _store is None:
        _store = InMemoryMessageStore()
    return _store
