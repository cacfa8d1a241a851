from __future__ import annotations

import pytest

from termbridge.errors import ExitCode, TermBridgeError
from termbridge.terminal import Geometry, SessionState
from termbridge.terminal.models import LIVE_STATES


def test_geometry_defaults_to_classic_size() -> None:
    assert Geometry() == Geometry(cols=80, rows=24)


@pytest.mark.parametrize(("cols", "rows"), [(0, 24), (80, 0), (-1, -1)])
def test_geometry_rejects_non_positive_sizes(cols: int, rows: int) -> None:
    with pytest.raises(TermBridgeError) as exc_info:
        Geometry(cols=cols, rows=rows)
    assert exc_info.value.code == ExitCode.VALIDATION_ERROR


def test_live_states_cover_connecting_and_connected() -> None:
    assert LIVE_STATES == {SessionState.CONNECTING, SessionState.CONNECTED}
    assert SessionState("closed") is SessionState.CLOSED
