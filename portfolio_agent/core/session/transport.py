"""Duplex, text-framed transports for session channels."""

import logging
from typing import AsyncIterator, Optional, Protocol, runtime_checkable

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Text-framed duplex connection."""

    async def connect(self, url: str) -> None: ...

    async def send(self, text: str) -> None: ...

    def messages(self) -> AsyncIterator[str]:
        """Yield inbound frames until the connection ends."""
        ...

    async def close(self) -> None: ...


class WebSocketTransport:
    """Transport backed by a ``websockets`` client connection."""

    def __init__(self, **connect_kwargs) -> None:
        self._connect_kwargs = connect_kwargs
        self._ws: Optional[ClientConnection] = None

    async def connect(self, url: str) -> None:
        self._ws = await ws_connect(url, **self._connect_kwargs)
        logger.info("Connected to %s", url)

    async def send(self, text: str) -> None:
        if self._ws is None:
            raise ConnectionError("WebSocket transport is not connected")
        await self._ws.send(text)

    async def messages(self) -> AsyncIterator[str]:
        if self._ws is None:
            return
        try:
            async for frame in self._ws:
                if isinstance(frame, bytes):
                    frame = frame.decode("utf-8", errors="replace")
                yield frame
        except ConnectionClosed as e:
            logger.info("WebSocket closed: %s", e)

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
