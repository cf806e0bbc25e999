"""
WebSocket transport used by the streaming session.

The session only talks to the Transport interface; AiohttpTransport is the
production implementation on top of aiohttp's WebSocket client.
"""

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

import aiohttp

from .errors import TransportError
from .frames import Frame

logger = logging.getLogger(__name__)


class Transport(ABC):
    """One physical connection. Owned by a single task."""

    @abstractmethod
    async def send(self, message: str) -> None:
        """Send a text frame."""

    @abstractmethod
    async def recv(self) -> Frame:
        """
        Receive the next frame.

        Returns:
            Text or binary payload, or None for a transport-level ping/pong

        Raises:
            TransportError: If the connection failed or was closed
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""


TransportFactory = Callable[[], Awaitable[Transport]]


class AiohttpTransport(Transport):
    """Transport backed by an aiohttp ClientWebSocketResponse."""

    def __init__(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Args:
            ws: Open WebSocket
            session: Session to close together with the socket, if owned
        """
        self._ws = ws
        self._owned_session = session

    @classmethod
    async def connect(
        cls,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> "AiohttpTransport":
        """Open a WebSocket connection to url."""
        owned = session is None
        session = session or aiohttp.ClientSession()
        try:
            ws = await session.ws_connect(url, autoping=True, heartbeat=None)
        except (aiohttp.ClientError, OSError) as e:
            if owned:
                await session.close()
            raise TransportError(f"WebSocket connect to {url} failed: {e}") from e
        except BaseException:
            if owned:
                await session.close()
            raise

        logger.info(f"Connected to WebSocket: {url}")
        return cls(ws, session if owned else None)

    async def send(self, message: str) -> None:
        if self._ws.closed:
            raise TransportError("WebSocket is closed")
        try:
            await self._ws.send_str(message)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise TransportError(f"WebSocket send failed: {e}") from e

    async def recv(self) -> Frame:
        try:
            msg = await self._ws.receive()
        except (aiohttp.ClientError, ConnectionError) as e:
            raise TransportError(f"WebSocket receive failed: {e}") from e

        if msg.type == aiohttp.WSMsgType.TEXT:
            return msg.data
        if msg.type == aiohttp.WSMsgType.BINARY:
            return msg.data
        if msg.type in (aiohttp.WSMsgType.PING, aiohttp.WSMsgType.PONG):
            return None
        if msg.type == aiohttp.WSMsgType.ERROR:
            raise TransportError(f"WebSocket error: {self._ws.exception()}")
        raise TransportError(
            f"WebSocket closed by server (code: {self._ws.close_code})"
        )

    async def close(self) -> None:
        try:
            if not self._ws.closed:
                await self._ws.close()
        finally:
            if self._owned_session is not None and not self._owned_session.closed:
                await self._owned_session.close()


def aiohttp_transport_factory(
    url: str,
    session: Optional[aiohttp.ClientSession] = None,
) -> TransportFactory:
    """Factory connecting a fresh AiohttpTransport to url on every call."""

    async def connect() -> Transport:
        return await AiohttpTransport.connect(url, session)

    return connect
