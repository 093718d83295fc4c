from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..core.session.models import ChatMessage, Sender
from ..services.messages import InMemoryMessageStore, get_message_store
from ..types.requests import StoredMessageRequest
from ..types.responses import StoredMessage

router = APIRouter(prefix="/messages")


def _to_stored(message: ChatMessage) -> StoredMessage:
    return StoredMessage(role=message.sender.value, content=message.text, timestamp=message.timestamp)


@router.get("", response_model=List[StoredMessage])
async def list_messages(store: InMemoryMessageStore = Depends(get_message_store)):
    """Persisted chat history ordered by timestamp"""
    return [_to_stored(message) for message in await store.list()]


@router.post("", response_model=StoredMessage)
async def create_message(
    request: StoredMessageRequest,
    store: InMemoryMessageStore = Depends(get_message_store),
):
    if not request.role or not request.content:
        raise HTTPException(status_code=400, detail="Missing required fields")

    message = ChatMessage(
        text=request.content,
        sender=Sender(request.role),
        timestamp=request.timestamp or datetime.now(timezone.utc),
    )
    await store.append(message)
    return _to_stored(message)
