"""Registry of independent terminal views."""

from __future__ import annotations

import logging as py_logging

from termbridge.config import TerminalTheme
from termbridge.errors import ExitCode, TermBridgeError
from termbridge.terminal.emulator import EmulatorFactory
from termbridge.terminal.models import LIVE_STATES, Geometry
from termbridge.terminal.session import TerminalSession
from termbridge.terminal.transport import TransportFactory

logger = py_logging.getLogger(__name__)


class TerminalService:
    """Each view gets its own session; nothing is shared between them."""

    def __init__(
        self,
        *,
        transport_factory: TransportFactory,
        emulator_factory: EmulatorFactory,
        max_sessions: int = 8,
        default_geometry: Geometry | None = None,
        theme: TerminalTheme | None = None,
    ) -> None:
        if max_sessions < 1 or max_sessions > 16:
            raise TermBridgeError(
                f"Invalid max session count: {max_sessions}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use a value between 1 and 16.",
            )
        self.max_sessions = max_sessions
        self.default_geometry = default_geometry or Geometry()
        self.theme = theme or TerminalTheme()
        self._transport_factory = transport_factory
        self._emulator_factory = emulator_factory
        self._sessions: dict[str, TerminalSession] = {}

    def list_sessions(self) -> list[TerminalSession]:
        return [self._sessions[key] for key in sorted(self._sessions)]

    def get(self, view_id: str) -> TerminalSession:
        session = self._sessions.get(view_id)
        if session is None:
            raise TermBridgeError(
                f"Terminal view not found: {view_id}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Open the terminal view first.",
            )
        return session

    def open(self, view_id: str, *, geometry: Geometry | None = None) -> TerminalSession:
        """Open a view, reconnecting it if it was closed; no-op while live."""
        session = self._sessions.get(view_id)
        if session is None:
            if len(self._sessions) >= self.max_sessions:
                raise TermBridgeError(
                    f"Terminal view limit reached: {self.max_sessions}",
                    code=ExitCode.VALIDATION_ERROR,
                    hint="Close another terminal view before opening a new one.",
                )
            session = TerminalSession(
                transport_factory=self._transport_factory,
                emulator_factory=self._emulator_factory,
                view_id=view_id,
                geometry=geometry or self.default_geometry,
                theme=self.theme,
            )
            self._sessions[view_id] = session
            logger.debug("Registered terminal view=%s", view_id)
        elif geometry is not None:
            session.fit(geometry)
        session.open()
        return session

    def close(self, view_id: str) -> None:
        session = self._sessions.pop(view_id, None)
        if session is None:
            logger.debug("Terminal view already gone view=%s", view_id)
            return
        session.close()

    def close_all(self) -> None:
        for view_id in list(self._sessions):
            self.close(view_id)

    def live_count(self) -> int:
        return sum(1 for session in self._sessions.values() if session.state in LIVE_STATES)
