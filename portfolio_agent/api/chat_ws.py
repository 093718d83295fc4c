"""
Chat WebSocket

Server half of the session protocol. Every text frame is a user turn; the
agent's answer comes back as ``{"type": "agent_response", "message": ...}``
and terminal failures as ``{"type": "agent_error", "message": ...}``.

Each reply runs in its own task so a slow provider call does not hold up
receipt of later turns. Replies are queued in arrival order and a single
sender drains the queue, so answers go out in the order the turns came in.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..core.agent import AgentInvoker, get_agent
from ..core.recovery import RetryExhausted, UnrecoverableError
from ..core.session.models import AGENT_ERROR, AGENT_RESPONSE, ChatMessage, Sender
from ..logging_config import bind_session, clear_session
from ..services.messages import get_message_store

logger = logging.getLogger(__name__)

router = APIRouter()

GREETING = "Agent initialised"
NOT_CONFIGURED = "Agent is not configured: no API key for the selected provider"


def _event(kind: str, message: str) -> Dict[str, Any]:
    return {"type": kind, "message": message}


async def _reply(agent: Optional[AgentInvoker], text: str, thread_id: str) -> Dict[str, Any]:
    if agent is None:
        return _event(AGENT_ERROR, NOT_CONFIGURED)
    try:
        outcome = await agent.invoke(text, thread_id=thread_id)
    except RetryExhausted as exc:
        logger.error("Agent gave up after %d attempts: %s", exc.attempts, exc.last_error)
        return _event(AGENT_ERROR, str(exc))
    except UnrecoverableError as exc:
        logger.error("Agent failed: %s", exc)
        return _event(AGENT_ERROR, str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.error("Agent invocation crashed: %s", exc, exc_info=True)
        return _event(AGENT_ERROR, f"Agent failed to respond: {exc}")
    return _event(AGENT_RESPONSE, outcome.output)


async def _drain_replies(websocket: WebSocket, replies: "asyncio.Queue[asyncio.Task]", store: Any) -> None:
    while True:
        task = await replies.get()
        event = await task
        if event["type"] == AGENT_RESPONSE:
            await store.append(ChatMessage(text=event["message"], sender=Sender.AGENT))
        await websocket.send_json(event)


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket) -> None:
    await websocket.accept()

    session_id = uuid.uuid4().hex
    bind_session(session_id)
    agent = get_agent()
    store = get_message_store()
    replies: "asyncio.Queue[asyncio.Task]" = asyncio.Queue()
    pending: set[asyncio.Task] = set()

    logger.info("Chat session opened (agent configured: %s)", agent is not None)
    await websocket.send_json(_event(AGENT_RESPONSE, GREETING))
    sender = asyncio.create_task(_drain_replies(websocket, replies, store), name=f"chat-sender-{session_id}")

    try:
        while True:
            text = await websocket.receive_text()
            await store.append(ChatMessage(text=text, sender=Sender.USER))
            task = asyncio.create_task(_reply(agent, text, session_id))
            pending.add(task)
            task.add_done_callback(pending.discard)
            replies.put_nowait(task)
    except WebSocketDisconnect as exc:
        logger.info("Chat session closed by client (code %s)", exc.code)
    finally:
        # Replies still in flight belong to a closed connection; drop them.
        sender.cancel()
        for task in list(pending):
            task.cancel()
        await asyncio.gather(sender, *pending, return_exceptions=True)
        if agent is not None and hasattr(agent, "forget"):
            agent.forget(session_id)
        clear_session()
