"""Emulator backed by the controlling terminal of this process."""

from __future__ import annotations

import asyncio
import logging as py_logging
import os
import signal
import sys
from collections.abc import Callable

from termbridge.config import TerminalTheme
from termbridge.errors import ExitCode, TermBridgeError
from termbridge.terminal.emulator import EmulatorBase
from termbridge.terminal.models import Geometry

logger = py_logging.getLogger(__name__)

DETACH_KEY = b"\x1d"  # Ctrl-]
_READ_SIZE = 4096
_CURSOR_BLINK = b"\x1b[1 q"
_CURSOR_STEADY = b"\x1b[2 q"
_CURSOR_DEFAULT = b"\x1b[0 q"


def measure_geometry(fd: int, fallback: Geometry) -> Geometry:
    try:
        size = os.get_terminal_size(fd)
    except OSError:
        return fallback
    if size.columns < 1 or size.lines < 1:
        return fallback
    return Geometry(cols=size.columns, rows=size.lines)


class LocalTerminal(EmulatorBase):
    """Raw-mode passthrough: the real terminal does the rendering."""

    def __init__(
        self,
        geometry: Geometry,
        theme: TerminalTheme | None = None,
        *,
        stdin_fd: int | None = None,
        stdout_fd: int | None = None,
        on_detach: Callable[[], None] | None = None,
    ) -> None:
        try:
            import termios
            import tty
        except ImportError as exc:
            raise TermBridgeError(
                "Local terminal attach needs a POSIX tty.",
                code=ExitCode.UNSUPPORTED_PLATFORM,
                hint="Run attach from a Linux or macOS terminal.",
            ) from exc

        self._stdin_fd = sys.stdin.fileno() if stdin_fd is None else stdin_fd
        self._stdout_fd = sys.stdout.fileno() if stdout_fd is None else stdout_fd
        if not os.isatty(self._stdin_fd):
            raise TermBridgeError(
                "Standard input is not a terminal.",
                code=ExitCode.UNSUPPORTED_PLATFORM,
                hint="Run attach from an interactive terminal.",
            )
        super().__init__(measure_geometry(self._stdout_fd, geometry), theme or TerminalTheme())
        self._termios = termios
        self._on_detach = on_detach
        self._saved_attrs = termios.tcgetattr(self._stdin_fd)
        tty.setraw(self._stdin_fd)

        self._loop = asyncio.get_running_loop()
        self._loop.add_reader(self._stdin_fd, self._on_readable)
        self._loop.add_signal_handler(signal.SIGWINCH, self._on_winch)
        self._write_all(_CURSOR_BLINK if self.theme.cursor_blink else _CURSOR_STEADY)

    def write(self, data: bytes) -> None:
        if self.disposed:
            return
        self._write_all(data)

    def dispose(self) -> None:
        if self.disposed:
            return
        super().dispose()
        self._loop.remove_reader(self._stdin_fd)
        self._loop.remove_signal_handler(signal.SIGWINCH)
        try:
            self._termios.tcsetattr(self._stdin_fd, self._termios.TCSADRAIN, self._saved_attrs)
        except self._termios.error as exc:
            logger.debug("Failed to restore tty attributes: %s", exc)
        self._write_all(_CURSOR_DEFAULT)

    def _on_readable(self) -> None:
        try:
            data = os.read(self._stdin_fd, _READ_SIZE)
        except OSError as exc:
            logger.debug("Reading local tty failed: %s", exc)
            return
        if not data:
            self._detach()
            return
        head, found, _ = data.partition(DETACH_KEY)
        self._emit_input(head)
        if found:
            self._detach()

    def _on_winch(self) -> None:
        self.fit(measure_geometry(self._stdout_fd, self.geometry))

    def _detach(self) -> None:
        if self._on_detach is not None:
            self._on_detach()

    def _write_all(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = os.write(self._stdout_fd, view)
            view = view[written:]
