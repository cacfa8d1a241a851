"""Full-duplex socket used by a terminal session."""

from __future__ import annotations

import asyncio
import logging as py_logging
from collections.abc import Callable
from typing import Any, Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from termbridge.errors import TransportClosed
from termbridge.protocol import BinaryMessage, Message, TextMessage

logger = py_logging.getLogger(__name__)


class Transport(Protocol):
    async def connect(self) -> None: ...

    async def send(self, message: Message) -> None: ...

    async def recv(self) -> Message: ...

    def close(self) -> None: ...


TransportFactory = Callable[[], Transport]


class WebSocketTransport:
    """websockets client connection speaking text/binary messages.

    ``recv`` is only awaited when the caller is ready for more output, so the
    client's bounded receive queue pushes back on the remote end instead of
    buffering without limit.
    """

    def __init__(
        self,
        url: str,
        *,
        connector: Callable[..., Any] = connect,
        max_queue: int = 64,
    ) -> None:
        self.url = url
        self._connector = connector
        self._max_queue = max_queue
        self._ws: ClientConnection | None = None
        self._closing: asyncio.Task[None] | None = None
        self.closed = False

    async def connect(self) -> None:
        if self.closed:
            raise TransportClosed("Transport already closed.", hint="Open a new session to reconnect.")
        try:
            ws = await self._connector(self.url, open_timeout=None, max_queue=self._max_queue)
        except (OSError, WebSocketException) as exc:
            raise TransportClosed(
                f"Failed to connect to {self.url}.",
                hint=str(exc) or "Check that the terminal host is running.",
            ) from exc
        if self.closed:
            await ws.close()
            raise TransportClosed("Transport closed while connecting.")
        self._ws = ws
        logger.debug("Websocket established url=%s", self.url)

    async def send(self, message: Message) -> None:
        ws = self._require_open()
        try:
            if isinstance(message, BinaryMessage):
                await ws.send(message.payload)
            else:
                await ws.send(message.text)
        except ConnectionClosed as exc:
            raise TransportClosed("Websocket closed during send.", hint=str(exc)) from exc

    async def recv(self) -> Message:
        ws = self._require_open()
        try:
            data = await ws.recv()
        except ConnectionClosed as exc:
            raise TransportClosed("Websocket closed by remote end.", hint=str(exc)) from exc
        if isinstance(data, bytes):
            return BinaryMessage(data)
        return TextMessage(data)

    def close(self) -> None:
        """Request a graceful close without waiting for it."""
        if self.closed:
            return
        self.closed = True
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            self._closing = asyncio.get_running_loop().create_task(ws.close())
        except RuntimeError:
            logger.debug("No running loop; dropping websocket without close handshake url=%s", self.url)

    async def wait_closed(self) -> None:
        """Finish the close handshake started by ``close``."""
        closing, self._closing = self._closing, None
        if closing is None:
            return
        try:
            await closing
        except (OSError, WebSocketException) as exc:
            logger.debug("Websocket close handshake failed url=%s error=%s", self.url, exc)

    def _require_open(self) -> ClientConnection:
        if self._ws is None:
            raise TransportClosed("Websocket is not connected.")
        return self._ws
