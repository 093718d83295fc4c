"""
Session Channel

Client side of a chat session: a long-lived duplex connection carrying
user and agent turns, plus an observable "agent is composing" flag.

State machine: CONNECTING -> OPEN -> CLOSED. The transcript and the
thinking flag are only mutated while holding ``self._lock``, so the
reader task and concurrent senders never interleave a mutation.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from pydantic import ValidationError

from .models import (
    AGENT_RESPONSE,
    ChatMessage,
    ConnectionStatus,
    InboundEvent,
    Sender,
    SessionState,
)
from .transport import Transport, WebSocketTransport
from ..recovery.errors import ChannelClosed

StateCallback = Callable[[SessionState], Union[None, Awaitable[None]]]
EventHandler = Callable[[InboundEvent], Union[None, Awaitable[None]]]


class SessionChannel:
    """
    One chat session over a duplex transport.

    Usage:
        channel = SessionChannel("ws://localhost:8000/ws")
        channel.subscribe(render)
        await channel.open()
        await channel.send_message("What is my best yield on AVAX?")
    """

    def __init__(
        self,
        url: str,
        transport: Optional[Transport] = None,
        *,
        store: Any = None,
        connect_timeout: Optional[float] = None,
        raise_on_closed: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.url = url
        self.transport: Transport = transport or WebSocketTransport()
        self.store = store
        self.connect_timeout = connect_timeout
        self.raise_on_closed = raise_on_closed
        self.logger = logger or logging.getLogger(__name__)

        self._status = ConnectionStatus.CONNECTING
        self._thinking = False
        self._transcript: List[ChatMessage] = []
        self._lock = asyncio.Lock()
        self._reader: Optional[asyncio.Task] = None
        self._subscribers: List[StateCallback] = []
        self._event_handlers: Dict[str, List[EventHandler]] = {}
        self._pending_callbacks: Set[asyncio.Task] = set()

    # ---------------------------
    # Introspection
    # ---------------------------
    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_agent_thinking(self) -> bool:
        return self._thinking

    @property
    def transcript(self) -> List[ChatMessage]:
        return list(self._transcript)

    @property
    def state(self) -> SessionState:
        return SessionState(
            connection_status=self._status,
            is_agent_thinking=self._thinking,
            transcript=tuple(self._transcript),
        )

    # ---------------------------
    # Observers
    # ---------------------------
    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """Register for state snapshots; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def on_event(self, kind: str, handler: EventHandler) -> None:
        """Register a handler for inbound event kinds this layer does not consume."""
        self._event_handlers.setdefault(kind, []).append(handler)

    # ---------------------------
    # Lifecycle
    # ---------------------------
    async def open(self) -> bool:
        """Connect the transport. Returns True once the channel is OPEN."""
        if self._status is not ConnectionStatus.CONNECTING:
            return self._status is ConnectionStatus.OPEN

        try:
            if self.connect_timeout:
                await asyncio.wait_for(self.transport.connect(self.url), timeout=self.connect_timeout)
            else:
                await self.transport.connect(self.url)
        except asyncio.TimeoutError:
            self.logger.warning("Connecting to %s timed out after %ss", self.url, self.connect_timeout)
            return False
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Connecting to %s failed: %s", self.url, exc)
            return False

        async with self._lock:
            if self._status is not ConnectionStatus.CONNECTING:
                return self._status is ConnectionStatus.OPEN
            self._status = ConnectionStatus.OPEN
            self._notify_locked()

        self.logger.info("Session channel open: %s", self.url)
        self._reader = asyncio.create_task(self._read_loop(), name="session-channel-reader")
        return True

    async def close(self) -> None:
        """Close locally. Further sends are dropped; the transcript stays readable."""
        closed_now = await self._mark_closed()
        reader = self._reader
        if reader and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        if closed_now:
            try:
                await self.transport.close()
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("Error closing transport: %s", exc)

    async def wait_closed(self) -> None:
        if self._reader:
            try:
                await self._reader
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "SessionChannel":
        await self.open()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ---------------------------
    # Outbound
    # ---------------------------
    async def send_message(self, text: str) -> bool:
        """
        Send a user turn.

        Only permitted while OPEN; otherwise a silent no-op returning False
        (or ChannelClosed when ``raise_on_closed`` is set).
        """
        async with self._lock:
            if self._status is not ConnectionStatus.OPEN:
                if self.raise_on_closed:
                    raise ChannelClosed(f"Cannot send on a {self._status.value} channel")
                self.logger.debug("Dropping message on %s channel", self._status.value)
                return False

            try:
                await self.transport.send(text)
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("Transport send failed, closing channel: %s", exc)
                self._status = ConnectionStatus.CLOSED
                self._notify_locked()
                return False

            message = ChatMessage(text=text, sender=Sender.USER)
            self._transcript.append(message)
            self._thinking = True
            self._notify_locked()
            await self._mirror(message)
        return True

    async def report_failure(self, text: str) -> None:
        """Record a terminal failure of the pending turn as an agent message."""
        async with self._lock:
            if self._status is ConnectionStatus.CLOSED:
                return
            message = ChatMessage(text=text, sender=Sender.AGENT)
            self._transcript.append(message)
            self._thinking = False
            self._notify_locked()
            await self._mirror(message)

    # ---------------------------
    # Inbound
    # ---------------------------
    async def _read_loop(self) -> None:
        try:
            async for frame in self.transport.messages():
                await self.handle_frame(frame)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self.logger.error("Session reader crashed: %s", exc, exc_info=True)
        finally:
            if await self._mark_closed():
                self.logger.info("Session channel closed by transport: %s", self.url)

    async def handle_frame(self, frame: str) -> None:
        """Apply one inbound frame. Malformed frames are logged and ignored."""
        try:
            event = InboundEvent.model_validate(json.loads(frame))
        except (ValueError, TypeError, ValidationError) as exc:
            self.logger.warning("Ignoring malformed event %r: %s", frame[:100], exc)
            return

        if event.type == AGENT_RESPONSE:
            async with self._lock:
                if self._status is ConnectionStatus.CLOSED:
                    return
                message = ChatMessage(text=event.message or "", sender=Sender.AGENT)
                self._transcript.append(message)
                self._thinking = False
                self._notify_locked()
                await self._mirror(message)
            return

        for handler in self._event_handlers.get(event.type, []):
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                self.logger.error("Event handler for %s failed: %s", event.type, exc)

    # ---------------------------
    # Helpers
    # ---------------------------
    async def _mark_closed(self) -> bool:
        async with self._lock:
            if self._status is ConnectionStatus.CLOSED:
                return False
            self._status = ConnectionStatus.CLOSED
            self._notify_locked()
            return True

    def _notify_locked(self) -> None:
        # Called with the lock held, so snapshots reach observers in mutation order.
        snapshot = self.state
        for callback in list(self._subscribers):
            try:
                result = callback(snapshot)
                if asyncio.iscoroutine(result):
                    task = asyncio.ensure_future(result)
                    self._pending_callbacks.add(task)
                    task.add_done_callback(self._callback_done)
            except Exception as exc:  # noqa: BLE001
                self.logger.error("State subscriber failed: %s", exc)

    def _callback_done(self, task: asyncio.Task) -> None:
        self._pending_callbacks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error("State subscriber failed: %s", task.exception())

    async def _mirror(self, message: ChatMessage) -> None:
        if self.store is None:
            return
        try:
            await self.store.append(message)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("Failed to persist chat message: %s", exc)
