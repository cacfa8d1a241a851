"""Terminal bridge domain models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from termbridge.errors import ExitCode, TermBridgeError


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


LIVE_STATES = frozenset({SessionState.CONNECTING, SessionState.CONNECTED})


@dataclass(frozen=True)
class Geometry:
    cols: int = 80
    rows: int = 24

    def __post_init__(self) -> None:
        if self.cols < 1 or self.rows < 1:
            raise TermBridgeError(
                f"Invalid terminal size: {self.cols}x{self.rows}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use positive terminal row/column values.",
            )


@dataclass(frozen=True)
class SessionEvent:
    view_id: str
    step: str
    message: str
