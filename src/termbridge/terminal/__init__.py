"""Client side of the terminal bridge."""

from .emulator import Emulator, EmulatorBase, ScreenEmulator
from .geometry import GeometrySynchronizer
from .models import Geometry, SessionEvent, SessionState
from .pump import IOPump
from .service import TerminalService
from .session import TRAILER_MESSAGE, TerminalSession
from .transport import Transport, WebSocketTransport

__all__ = [
    "Emulator",
    "EmulatorBase",
    "Geometry",
    "GeometrySynchronizer",
    "IOPump",
    "ScreenEmulator",
    "SessionEvent",
    "SessionState",
    "TerminalService",
    "TerminalSession",
    "TRAILER_MESSAGE",
    "Transport",
    "WebSocketTransport",
]
