from __future__ import annotations

import asyncio

import pytest
from _bridge_fakes import FakeTransportFactory, RecordingEmulatorFactory, settle

from termbridge.errors import TermBridgeError, TransportClosed
from termbridge.protocol import BinaryMessage, ErrorControl, TextMessage, encode_control
from termbridge.terminal import TRAILER_MESSAGE, Geometry, SessionState, TerminalSession


def _session(
    transports: FakeTransportFactory,
    emulators: RecordingEmulatorFactory,
    **kwargs: object,
) -> TerminalSession:
    return TerminalSession(transport_factory=transports, emulator_factory=emulators, **kwargs)


def test_open_sends_resize_handshake_before_any_data() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    async def scenario() -> None:
        session = _session(transports, emulators)
        session.open()
        assert session.state == SessionState.CONNECTING
        await settle()
        assert session.state == SessionState.CONNECTED
        emulators.created[0].type("ls\r")
        await settle()

    asyncio.run(scenario())

    sent = transports.created[0].sent
    assert sent[0] == TextMessage('{"type":"resize","cols":80,"rows":24}')
    assert sent[1] == BinaryMessage(b"ls\r")


def test_keystroke_becomes_single_binary_frame() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    async def scenario() -> None:
        session = _session(transports, emulators)
        session.open()
        await settle()
        emulators.created[0].type("ls\r")
        await settle()

    asyncio.run(scenario())

    assert transports.created[0].data_frames() == [bytes([0x6C, 0x73, 0x0D])]


def test_inbound_data_reaches_emulator_unaltered() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    async def scenario() -> None:
        session = _session(transports, emulators)
        session.open()
        await settle()
        transports.created[0].feed(BinaryMessage(b"file.txt\r\n"))
        await settle()

    asyncio.run(scenario())

    assert bytes(emulators.created[0].written) == b"file.txt\r\n"


def test_open_is_idempotent_while_live() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    async def scenario() -> SessionState:
        session = _session(transports, emulators)
        session.open()
        session.open()
        await settle()
        session.open()
        await settle()
        return session.state

    assert asyncio.run(scenario()) == SessionState.CONNECTED
    assert len(transports.created) == 1
    assert len(emulators.created) == 1


def test_close_is_idempotent_in_every_state() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()
    idle = _session(transports, emulators)
    idle.close()
    idle.close()
    assert idle.state == SessionState.CLOSED

    async def scenario() -> TerminalSession:
        session = _session(transports, emulators)
        session.open()
        session.close()
        session.open()
        await settle()
        session.close()
        session.close()
        await settle()
        return session

    session = asyncio.run(scenario())

    assert session.state == SessionState.CLOSED
    assert session.transport is None
    assert session.emulator is None
    assert all(transport.closed for transport in transports.created)
    assert all(emulator.disposed for emulator in emulators.created)
    assert TRAILER_MESSAGE.encode("utf-8") not in bytes(emulators.created[-1].written)


def test_remote_closure_appends_trailer_and_allows_fresh_reopen() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    async def scenario() -> TerminalSession:
        session = _session(transports, emulators)
        session.open()
        await settle()
        transports.created[0].hang_up()
        await settle()
        assert session.state == SessionState.CLOSED
        session.open()
        await settle()
        return session

    session = asyncio.run(scenario())

    first, second = emulators.created
    assert bytes(first.written).endswith(TRAILER_MESSAGE.encode("utf-8"))
    assert first.disposed is True
    assert transports.created[0].closed is True
    assert transports.created[0] is not transports.created[1]
    assert session.state == SessionState.CONNECTED
    assert session.emulator is second
    assert transports.created[1].control_frames()[0] == {"type": "resize", "cols": 80, "rows": 24}


def test_no_reconnect_without_explicit_open() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    async def scenario() -> TerminalSession:
        session = _session(transports, emulators)
        session.open()
        await settle()
        transports.created[0].hang_up()
        await settle(100)
        return session

    session = asyncio.run(scenario())

    assert session.state == SessionState.CLOSED
    assert len(transports.created) == 1
    assert isinstance(session.last_error, TransportClosed)


def test_resize_while_connected_sends_exactly_one_frame() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    async def scenario() -> None:
        session = _session(transports, emulators)
        session.open()
        await settle()
        session.fit(Geometry(cols=120, rows=40))
        session.fit(Geometry(cols=120, rows=40))
        await settle()

    asyncio.run(scenario())

    assert transports.created[0].control_frames() == [
        {"type": "resize", "cols": 80, "rows": 24},
        {"type": "resize", "cols": 120, "rows": 40},
    ]


def test_resize_while_disconnected_is_dropped_and_latest_sent_on_reopen() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    async def scenario() -> None:
        session = _session(transports, emulators)
        session.open()
        await settle()
        session.close()
        session.fit(Geometry(cols=120, rows=40))
        await settle()
        assert len(transports.created[0].control_frames()) == 1
        session.open()
        await settle()

    asyncio.run(scenario())

    assert transports.created[1].control_frames() == [{"type": "resize", "cols": 120, "rows": 40}]
    assert emulators.created[1].geometry == Geometry(cols=120, rows=40)


def test_emulator_reported_resize_during_connect_is_folded_into_handshake() -> None:
    gate = asyncio.Event()
    transports = FakeTransportFactory(gate=gate)
    emulators = RecordingEmulatorFactory()

    async def scenario() -> None:
        session = _session(transports, emulators)
        session.open()
        await settle()
        emulators.created[0].fit(Geometry(cols=100, rows=30))
        gate.set()
        await settle()

    asyncio.run(scenario())

    assert transports.created[0].control_frames() == [{"type": "resize", "cols": 100, "rows": 30}]


def test_input_before_connect_is_not_sent() -> None:
    gate = asyncio.Event()
    transports = FakeTransportFactory(gate=gate)
    emulators = RecordingEmulatorFactory()

    async def scenario() -> None:
        session = _session(transports, emulators)
        session.open()
        emulators.created[0].type("early")
        gate.set()
        await settle()
        emulators.created[0].type("late")
        await settle()

    asyncio.run(scenario())

    assert transports.created[0].data_frames() == [b"late"]


def test_close_during_connect_tears_down_and_never_connects() -> None:
    gate = asyncio.Event()
    transports = FakeTransportFactory(gate=gate)
    emulators = RecordingEmulatorFactory()

    async def scenario() -> TerminalSession:
        session = _session(transports, emulators)
        session.open()
        await settle()
        session.close()
        gate.set()
        await settle()
        return session

    session = asyncio.run(scenario())

    assert session.state == SessionState.CLOSED
    assert transports.created[0].connected is False
    assert transports.created[0].closed is True
    assert transports.created[0].sent == []
    assert emulators.created[0].disposed is True


def test_connect_failure_ends_closed_with_trailer() -> None:
    transports = FakeTransportFactory(refuse=True)
    emulators = RecordingEmulatorFactory()
    states: list[SessionState] = []

    async def scenario() -> TerminalSession:
        session = _session(transports, emulators, on_state_change=states.append)
        session.open()
        await settle()
        return session

    session = asyncio.run(scenario())

    assert states == [SessionState.CONNECTING, SessionState.CLOSED]
    assert isinstance(session.last_error, TransportClosed)
    assert bytes(emulators.created[0].written) == TRAILER_MESSAGE.encode("utf-8")


def test_malformed_control_message_is_dropped() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    async def scenario() -> SessionState:
        session = _session(transports, emulators)
        session.open()
        await settle()
        transports.created[0].feed(TextMessage("{not json"))
        transports.created[0].feed(TextMessage('{"type":"resize","cols":"wide"}'))
        transports.created[0].feed(BinaryMessage(b"still here"))
        await settle()
        return session.state

    assert asyncio.run(scenario()) == SessionState.CONNECTED
    assert bytes(emulators.created[0].written) == b"still here"


def test_host_error_frame_is_rendered_as_notice() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    async def scenario() -> TerminalSession:
        session = _session(transports, emulators)
        session.open()
        await settle()
        transports.created[0].feed(encode_control(ErrorControl(message="failed to start terminal")))
        await settle()
        return session

    session = asyncio.run(scenario())

    assert b"failed to start terminal" in bytes(emulators.created[0].written)
    assert any(event.step == "remote-error" for event in session.list_events())


def test_factory_failure_is_contained() -> None:
    transports = FakeTransportFactory()

    def broken_emulator(_geometry: Geometry, _theme: object) -> object:
        raise RuntimeError("no renderer")

    async def scenario() -> TerminalSession:
        session = TerminalSession(transport_factory=transports, emulator_factory=broken_emulator)
        session.open()
        await settle()
        return session

    session = asyncio.run(scenario())

    assert session.state == SessionState.CLOSED
    assert session.last_error is not None
    assert transports.created == []


def test_open_requires_running_loop() -> None:
    session = _session(FakeTransportFactory(), RecordingEmulatorFactory())

    with pytest.raises(TermBridgeError):
        session.open()
    assert session.state == SessionState.IDLE


def test_state_listener_failure_does_not_escape_close() -> None:
    def explode(_state: SessionState) -> None:
        raise RuntimeError("listener bug")

    session = _session(FakeTransportFactory(), RecordingEmulatorFactory(), on_state_change=explode)
    session.close()

    assert session.state == SessionState.CLOSED


def test_lifecycle_events_are_recorded() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    async def scenario() -> TerminalSession:
        session = _session(transports, emulators, view_id="panel")
        session.open()
        await settle()
        session.close()
        return session

    session = asyncio.run(scenario())

    assert [event.step for event in session.list_events()] == ["connecting", "connected", "closed"]
    assert {event.view_id for event in session.list_events()} == {"panel"}


def test_wait_closed_resolves_after_remote_hang_up() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    async def scenario() -> SessionState:
        session = _session(transports, emulators)
        session.open()
        await settle()
        transports.created[0].hang_up()
        await asyncio.wait_for(session.wait_closed(), timeout=2)
        return session.state

    assert asyncio.run(scenario()) == SessionState.CLOSED


def test_handshake_precedes_input_typed_by_state_listener() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    def type_on_connect(state: SessionState) -> None:
        if state == SessionState.CONNECTED:
            emulators.created[0].type("ls\r")

    async def scenario() -> None:
        session = _session(transports, emulators, on_state_change=type_on_connect)
        session.open()
        await settle()

    asyncio.run(scenario())

    assert transports.created[0].sent == [
        TextMessage('{"type":"resize","cols":80,"rows":24}'),
        BinaryMessage(b"ls\r"),
    ]


def test_unexpected_connect_error_ends_closed() -> None:
    emulators = RecordingEmulatorFactory()

    class _BadHandshake(FakeTransportFactory):
        def __call__(self):
            transport = super().__call__()

            async def connect() -> None:
                raise ValueError("bad handshake")

            transport.connect = connect
            return transport

    transports = _BadHandshake()

    async def scenario() -> TerminalSession:
        session = _session(transports, emulators)
        session.open()
        await settle()
        return session

    session = asyncio.run(scenario())

    assert session.state == SessionState.CLOSED
    assert isinstance(session.last_error, TransportClosed)
    assert "bad handshake" in str(session.last_error)
    assert transports.created[0].closed is True
    assert bytes(emulators.created[0].written) == TRAILER_MESSAGE.encode("utf-8")


def test_emulator_write_failure_tears_session_down() -> None:
    transports = FakeTransportFactory()
    emulators = RecordingEmulatorFactory()

    async def scenario() -> TerminalSession:
        session = _session(transports, emulators)
        session.open()
        await settle()

        def broken_write(_data: bytes) -> None:
            raise OSError(5, "Input/output error")

        emulators.created[0].write = broken_write
        transports.created[0].feed(BinaryMessage(b"one"))
        transports.created[0].feed(BinaryMessage(b"two"))
        await settle()
        return session

    session = asyncio.run(scenario())

    assert session.state == SessionState.CLOSED
    assert isinstance(session.last_error, TransportClosed)
    assert transports.created[0].closed is True
    assert emulators.created[0].disposed is True
