"""Keeps the remote pty size in step with the local viewport."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable

from termbridge.protocol import ResizeControl
from termbridge.terminal.models import Geometry

logger = py_logging.getLogger(__name__)


class GeometrySynchronizer:
    def __init__(
        self,
        send: Callable[[ResizeControl], None],
        *,
        is_connected: Callable[[], bool],
    ) -> None:
        self._send = send
        self._is_connected = is_connected
        self._last_sent: Geometry | None = None

    @property
    def last_sent(self) -> Geometry | None:
        return self._last_sent

    def handshake(self, geometry: Geometry) -> None:
        """Send the mandatory initial resize for a freshly connected socket."""
        self._last_sent = None
        self._emit(geometry)

    def update(self, geometry: Geometry) -> None:
        if not self._is_connected():
            # Not queued: the next handshake carries whatever is current then.
            logger.debug("Dropping resize while disconnected cols=%s rows=%s", geometry.cols, geometry.rows)
            return
        if geometry == self._last_sent:
            return
        self._emit(geometry)

    def _emit(self, geometry: Geometry) -> None:
        self._last_sent = geometry
        logger.debug("Sending resize cols=%s rows=%s", geometry.cols, geometry.rows)
        self._send(ResizeControl(cols=geometry.cols, rows=geometry.rows))
