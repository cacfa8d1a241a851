"""Lifecycle controller for one interactive terminal view."""

from __future__ import annotations

import asyncio
import logging as py_logging
from collections import deque
from collections.abc import Callable

from termbridge.config import TerminalTheme
from termbridge.errors import ExitCode, TermBridgeError, TransportClosed
from termbridge.protocol import ErrorControl, ResizeControl
from termbridge.terminal.emulator import Emulator, EmulatorFactory
from termbridge.terminal.geometry import GeometrySynchronizer
from termbridge.terminal.models import LIVE_STATES, Geometry, SessionEvent, SessionState
from termbridge.terminal.pump import IOPump
from termbridge.terminal.transport import Transport, TransportFactory

logger = py_logging.getLogger(__name__)

TRAILER_MESSAGE = "\r\n\x1b[90m[session ended: reopen terminal to reconnect]\x1b[0m\r\n"
REMOTE_ERROR_TEMPLATE = "\r\n\x1b[90m[terminal error: {message}]\x1b[0m\r\n"
_MAX_EVENTS = 200

StateListener = Callable[[SessionState], None]


def _current_task() -> asyncio.Task[object] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class TerminalSession:
    """Owns at most one transport/emulator pair and the bridge wiring between them.

    ``open`` and ``close`` never block and never raise for transport trouble:
    connection failures and remote hang-ups end in ``CLOSED`` with the trailer
    written to the terminal, and the caller decides whether to ``open`` again.
    Every ``open`` builds a brand new transport, emulator, pump and
    synchronizer; nothing from an earlier connection is reused.
    """

    def __init__(
        self,
        *,
        transport_factory: TransportFactory,
        emulator_factory: EmulatorFactory,
        view_id: str = "terminal",
        geometry: Geometry | None = None,
        theme: TerminalTheme | None = None,
        on_state_change: StateListener | None = None,
    ) -> None:
        self.view_id = view_id
        self.theme = theme or TerminalTheme()
        self.last_error: TermBridgeError | None = None
        self._transport_factory = transport_factory
        self._emulator_factory = emulator_factory
        self._on_state_change = on_state_change
        self._geometry = geometry or Geometry()
        self._state = SessionState.IDLE
        self._transport: Transport | None = None
        self._emulator: Emulator | None = None
        self._pump: IOPump | None = None
        self._sync: GeometrySynchronizer | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._closed = asyncio.Event()
        self._events: deque[SessionEvent] = deque(maxlen=_MAX_EVENTS)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def geometry(self) -> Geometry:
        return self._geometry

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def emulator(self) -> Emulator | None:
        return self._emulator

    def list_events(self) -> list[SessionEvent]:
        return list(self._events)

    def open(self) -> None:
        if self._state in LIVE_STATES:
            logger.debug("open() ignored view=%s state=%s", self.view_id, self._state.value)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise TermBridgeError(
                "Terminal sessions need a running event loop.",
                code=ExitCode.RUNTIME_ERROR,
                hint="Call open() from within asyncio code.",
            ) from exc

        self.last_error = None
        self._closed.clear()
        self._set_state(SessionState.CONNECTING, f"Connecting at {self._geometry.cols}x{self._geometry.rows}.")
        try:
            emulator = self._emulator_factory(self._geometry, self.theme)
            self._emulator = emulator
            transport = self._transport_factory()
            self._transport = transport
        except Exception as exc:
            logger.exception("Failed to build terminal session view=%s", self.view_id)
            if isinstance(exc, TermBridgeError):
                self.last_error = exc
            else:
                self.last_error = TermBridgeError(
                    "Failed to build terminal session.",
                    code=ExitCode.RUNTIME_ERROR,
                    hint=str(exc),
                )
            self._teardown(trailer=None)
            self._set_state(SessionState.CLOSED, "Session could not be created.")
            return

        self._geometry = emulator.geometry
        self._sync = GeometrySynchronizer(self._send_control, is_connected=self._is_connected)
        self._pump = IOPump(
            transport,
            emulator,
            on_control=self._handle_control,
            on_closed=lambda exc: self._handle_transport_closed(transport, exc),
        )
        emulator.on_input(self._forward_input)
        emulator.on_resize(self._handle_resize)
        self._connect_task = loop.create_task(self._establish(transport), name=f"termbridge-connect-{self.view_id}")

    def close(self) -> None:
        if self._state is SessionState.CLOSED and self._transport is None and self._emulator is None:
            return
        self._teardown(trailer=None)
        self._set_state(SessionState.CLOSED, "Session closed by user.")

    def fit(self, geometry: Geometry) -> None:
        """Apply a viewport size computed by the surrounding view."""
        if self._emulator is not None:
            self._emulator.fit(geometry)
        self._geometry = geometry

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def _establish(self, transport: Transport) -> None:
        try:
            await transport.connect()
        except TransportClosed as exc:
            self._handle_transport_closed(transport, exc)
            return
        except Exception as exc:
            logger.warning("Transport connect failed view=%s", self.view_id, exc_info=True)
            self._handle_transport_closed(
                transport,
                TransportClosed("Failed to establish terminal transport.", hint=str(exc) or type(exc).__name__),
            )
            return
        if transport is not self._transport:
            logger.debug("Discarding connection completed after close view=%s", self.view_id)
            transport.close()
            return
        pump, sync = self._pump, self._sync
        if pump is None or sync is None:
            return
        self._connect_task = None
        # The resize must be queued before listeners can observe CONNECTED and type.
        self._state = SessionState.CONNECTED
        pump.start()
        sync.handshake(self._geometry)
        self._set_state(SessionState.CONNECTED, "Transport established.")

    def _is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    def _send_control(self, frame: ResizeControl) -> None:
        if self._pump is not None:
            self._pump.send_control(frame)

    def _forward_input(self, data: bytes | str) -> None:
        if self._state is not SessionState.CONNECTED or self._pump is None:
            logger.debug("Dropping input while %s view=%s", self._state.value, self.view_id)
            return
        self._pump.send_input(data)

    def _handle_resize(self, geometry: Geometry) -> None:
        self._geometry = geometry
        if self._sync is not None:
            self._sync.update(geometry)

    def _handle_control(self, frame: ResizeControl | ErrorControl) -> None:
        if isinstance(frame, ErrorControl):
            logger.warning("Terminal host reported an error view=%s message=%s", self.view_id, frame.message)
            self._record("remote-error", frame.message)
            if self._emulator is not None:
                self._emulator.write(REMOTE_ERROR_TEMPLATE.format(message=frame.message).encode("utf-8"))
            return
        logger.debug("Ignoring inbound control frame view=%s type=%s", self.view_id, frame.type)

    def _handle_transport_closed(self, transport: Transport, exc: TransportClosed | None) -> None:
        if transport is not self._transport:
            return
        self.last_error = exc
        reason = str(exc) if exc is not None else "Transport closed."
        logger.info("Terminal transport ended view=%s reason=%s", self.view_id, reason)
        self._teardown(trailer=TRAILER_MESSAGE)
        self._set_state(SessionState.CLOSED, reason)

    def _teardown(self, *, trailer: str | None) -> None:
        connect_task, self._connect_task = self._connect_task, None
        pump, self._pump = self._pump, None
        transport, self._transport = self._transport, None
        emulator, self._emulator = self._emulator, None
        self._sync = None

        if connect_task is not None and connect_task is not _current_task() and not connect_task.done():
            connect_task.cancel()
        if pump is not None:
            _best_effort("stop pump", pump.stop)
        if transport is not None:
            _best_effort("close transport", transport.close)
        if emulator is not None:
            if trailer:
                _best_effort("write trailer", lambda: emulator.write(trailer.encode("utf-8")))
            _best_effort("dispose emulator", emulator.dispose)

    def _set_state(self, state: SessionState, message: str) -> None:
        self._state = state
        self._record(state.value, message)
        if state is SessionState.CLOSED:
            self._closed.set()
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception:
                logger.warning("State listener failed view=%s", self.view_id, exc_info=True)

    def _record(self, step: str, message: str) -> None:
        self._events.append(SessionEvent(view_id=self.view_id, step=step, message=message))
        logger.info("session-event view=%s step=%s message=%s", self.view_id, step, message)


def _best_effort(step: str, action: Callable[[], object]) -> None:
    try:
        action()
    except Exception as exc:
        logger.debug("Teardown step failed step=%s error=%s", step, exc)
