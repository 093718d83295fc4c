"""Service layer helpers"""

from .completion import CompletionService, build_completion_service
from .messages import InMemoryMessageStore, MessageStore, get_message_store

__all__ = [
    "CompletionService",
    "build_completion_service",
    "InMemoryMessageStore",
    "MessageStore",
    "get_message_store",
]
