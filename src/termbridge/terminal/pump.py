"""Moves bytes between an emulator and its transport."""

from __future__ import annotations

import asyncio
import logging as py_logging
from collections.abc import Callable

from termbridge.errors import TransportClosed
from termbridge.protocol import (
    DataFrame,
    ErrorControl,
    Message,
    ResizeControl,
    decode_message,
    encode_control,
    encode_data,
)
from termbridge.terminal.emulator import Emulator
from termbridge.terminal.transport import Transport

logger = py_logging.getLogger(__name__)

ControlHandler = Callable[[ResizeControl | ErrorControl], None]
ClosedHandler = Callable[[TransportClosed | None], None]


class IOPump:
    """Two independent in-order streams over one transport.

    Outbound frames (control and data alike) share a single unbounded queue
    drained by one sender task, so nothing is dropped or reordered when the
    socket is slow. Inbound messages are read one at a time and handed to the
    emulator before the next read.
    """

    def __init__(
        self,
        transport: Transport,
        emulator: Emulator,
        *,
        on_control: ControlHandler | None = None,
        on_closed: ClosedHandler | None = None,
    ) -> None:
        self._transport = transport
        self._emulator = emulator
        self._on_control = on_control
        self._on_closed = on_closed
        self._outbound: asyncio.Queue[Message] = asyncio.Queue()
        self._tasks: list[asyncio.Task[None]] = []
        self._stopped = False

    @property
    def pending(self) -> int:
        return self._outbound.qsize()

    def start(self) -> None:
        if self._tasks or self._stopped:
            return
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._send_loop(), name="termbridge-send"),
            loop.create_task(self._recv_loop(), name="termbridge-recv"),
        ]

    def send_control(self, frame: ResizeControl | ErrorControl) -> None:
        self._enqueue(encode_control(frame))

    def send_input(self, data: bytes | str) -> None:
        message = encode_data(data)
        if message.payload:
            self._enqueue(message)

    def stop(self) -> None:
        self._shutdown()

    def _shutdown(self, current: asyncio.Task[None] | None = None) -> None:
        if self._stopped:
            return
        self._stopped = True
        for task in self._tasks:
            if task is not current:
                task.cancel()
        self._tasks = []
        dropped = self._outbound.qsize()
        while not self._outbound.empty():
            self._outbound.get_nowait()
        if dropped:
            logger.debug("Discarded unsent frames on stop count=%s", dropped)

    def _enqueue(self, message: Message) -> None:
        if self._stopped:
            return
        self._outbound.put_nowait(message)

    async def _send_loop(self) -> None:
        try:
            while True:
                message = await self._outbound.get()
                await self._transport.send(message)
        except TransportClosed as exc:
            self._finish(exc)
        except Exception as exc:
            logger.warning("Outbound stream failed", exc_info=True)
            self._finish(_as_closed("Outbound stream failed.", exc))

    async def _recv_loop(self) -> None:
        try:
            while True:
                message = await self._transport.recv()
                frame = decode_message(message)
                if isinstance(frame, DataFrame):
                    self._emulator.write(frame.payload)
                elif frame is not None and self._on_control is not None:
                    self._on_control(frame)
        except TransportClosed as exc:
            self._finish(exc)
        except Exception as exc:
            logger.warning("Inbound stream failed", exc_info=True)
            self._finish(_as_closed("Inbound stream failed.", exc))

    def _finish(self, exc: TransportClosed) -> None:
        if self._stopped:
            return
        logger.debug("Transport stream ended reason=%s", exc)
        self._shutdown(asyncio.current_task())
        if self._on_closed is not None:
            self._on_closed(exc)


def _as_closed(message: str, exc: Exception) -> TransportClosed:
    closed = TransportClosed(message, hint=str(exc) or type(exc).__name__)
    closed.__cause__ = exc
    return closed
