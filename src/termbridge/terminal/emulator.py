"""Emulator interface and the headless pyte-backed screen."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable
from typing import Protocol

import pyte

from termbridge.config import TerminalTheme
from termbridge.terminal.models import Geometry

logger = py_logging.getLogger(__name__)

InputListener = Callable[[bytes | str], None]
ResizeListener = Callable[[Geometry], None]


class Emulator(Protocol):
    @property
    def geometry(self) -> Geometry: ...

    def write(self, data: bytes) -> None: ...

    def fit(self, geometry: Geometry) -> None: ...

    def on_input(self, listener: InputListener) -> None: ...

    def on_resize(self, listener: ResizeListener) -> None: ...

    def dispose(self) -> None: ...


EmulatorFactory = Callable[[Geometry, TerminalTheme], Emulator]


class EmulatorBase:
    """Listener plumbing shared by the concrete emulators."""

    def __init__(self, geometry: Geometry, theme: TerminalTheme) -> None:
        self.theme = theme
        self._geometry = geometry
        self._input_listeners: list[InputListener] = []
        self._resize_listeners: list[ResizeListener] = []
        self.disposed = False

    @property
    def geometry(self) -> Geometry:
        return self._geometry

    def on_input(self, listener: InputListener) -> None:
        self._input_listeners.append(listener)

    def on_resize(self, listener: ResizeListener) -> None:
        self._resize_listeners.append(listener)

    def fit(self, geometry: Geometry) -> None:
        if self.disposed or geometry == self._geometry:
            return
        self._apply_geometry(geometry)
        self._geometry = geometry
        for listener in list(self._resize_listeners):
            listener(geometry)

    def dispose(self) -> None:
        self.disposed = True
        self._input_listeners.clear()
        self._resize_listeners.clear()

    def _emit_input(self, data: bytes | str) -> None:
        if self.disposed or not data:
            return
        for listener in list(self._input_listeners):
            listener(data)

    def _apply_geometry(self, geometry: Geometry) -> None:
        del geometry


class _ReplyingScreen(pyte.Screen):
    def __init__(self, columns: int, lines: int, reply: Callable[[str], None]) -> None:
        super().__init__(columns, lines)
        self._reply = reply

    def write_process_input(self, data: str) -> None:
        self._reply(data)


class ScreenEmulator(EmulatorBase):
    """In-memory VT screen; keeps its contents readable after dispose."""

    def __init__(self, geometry: Geometry, theme: TerminalTheme | None = None) -> None:
        super().__init__(geometry, theme or TerminalTheme())
        self.screen = _ReplyingScreen(geometry.cols, geometry.rows, self._emit_input)
        self._stream = pyte.ByteStream(self.screen)

    @property
    def display(self) -> list[str]:
        return list(self.screen.display)

    def text(self) -> str:
        return "\n".join(line.rstrip() for line in self.screen.display).rstrip("\n")

    def write(self, data: bytes) -> None:
        if self.disposed:
            logger.debug("Ignoring write to disposed screen bytes=%s", len(data))
            return
        self._stream.feed(data)

    def type(self, data: bytes | str) -> None:
        """Report keystrokes or pasted text as if typed by the user."""
        self._emit_input(data)

    def _apply_geometry(self, geometry: Geometry) -> None:
        self.screen.resize(lines=geometry.rows, columns=geometry.cols)
