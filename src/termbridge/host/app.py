"""FastAPI terminal host: one shell per websocket connection."""

from __future__ import annotations

import asyncio
import logging as py_logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, WebSocket
from starlette.websockets import WebSocketDisconnect

from termbridge import __version__
from termbridge.config import BridgeConfig, load_config
from termbridge.errors import TermBridgeError
from termbridge.host.pty_backend import PtyBackend, build_shell_env
from termbridge.protocol import ErrorControl, ResizeControl, encode_control, parse_control
from termbridge.terminal.models import Geometry

logger = py_logging.getLogger(__name__)

START_FAILURE_MESSAGE = "failed to start terminal"
LIMIT_MESSAGE = "terminal limit reached"
READ_CHUNK_BYTES = 4096


async def _pump_output(
    websocket: WebSocket,
    backend: PtyBackend,
    terminal_id: str,
    reader: ThreadPoolExecutor,
) -> None:
    loop = asyncio.get_running_loop()
    while True:
        try:
            chunk = await loop.run_in_executor(reader, lambda: backend.read(terminal_id, max_bytes=READ_CHUNK_BYTES))
        except TermBridgeError as exc:
            logger.debug("PTY read ended terminal=%s error=%s", terminal_id, exc)
            break
        if not chunk:
            break
        try:
            await websocket.send_bytes(chunk)
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.debug("Client gone while sending output terminal=%s error=%s", terminal_id, exc)
            return
    logger.info("Shell exited terminal=%s", terminal_id)
    with suppress(RuntimeError):
        await websocket.close()


async def _pump_input(websocket: WebSocket, backend: PtyBackend, terminal_id: str) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        payload = message.get("bytes")
        if payload is not None:
            try:
                backend.write(terminal_id, payload)
            except TermBridgeError as exc:
                logger.debug("PTY write failed terminal=%s error=%s", terminal_id, exc)
                return
            continue
        text = message.get("text")
        if text is None:
            continue
        frame = parse_control(text)
        if not isinstance(frame, ResizeControl):
            logger.debug("Ignoring control message terminal=%s", terminal_id)
            continue
        try:
            backend.resize(terminal_id, cols=frame.cols, rows=frame.rows)
        except TermBridgeError as exc:
            logger.warning("PTY resize failed terminal=%s error=%s", terminal_id, exc)
        else:
            logger.debug("Resized terminal=%s cols=%s rows=%s", terminal_id, frame.cols, frame.rows)


def create_app(config: BridgeConfig | None = None, *, backend: PtyBackend | None = None) -> FastAPI:
    config = config or load_config()
    backend = backend or PtyBackend()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Terminal host ready endpoint=%s", config.endpoint_path)
        yield
        logger.info("Terminal host shutting down; stopping %s shells", len(backend.list_handles()))
        backend.stop_all()

    app = FastAPI(title="termbridge host", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.backend = backend

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    async def terminal_socket(websocket: WebSocket) -> None:
        await websocket.accept()
        if len(backend.list_handles()) >= config.max_sessions:
            logger.warning("Rejecting terminal socket; %s shells already running", config.max_sessions)
            await websocket.send_text(encode_control(ErrorControl(message=LIMIT_MESSAGE)).text)
            await websocket.close()
            return
        terminal_id = uuid.uuid4().hex
        try:
            handle = backend.start(
                terminal_id,
                shell=config.resolve_shell(),
                env=build_shell_env(config.term_type),
                geometry=Geometry(cols=config.default_cols, rows=config.default_rows),
            )
        except TermBridgeError as exc:
            logger.error("Failed to start shell terminal=%s error=%s", terminal_id, exc)
            await websocket.send_text(encode_control(ErrorControl(message=START_FAILURE_MESSAGE)).text)
            await websocket.close()
            return

        logger.info("Shell started terminal=%s command=%s pid=%s", terminal_id, " ".join(handle.command), handle.pid)
        # One blocking reader per shell so busy sessions never starve each other.
        reader = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"pty-read-{terminal_id[:8]}")
        output = asyncio.create_task(_pump_output(websocket, backend, terminal_id, reader))
        try:
            await _pump_input(websocket, backend, terminal_id)
        finally:
            # Stopping first unblocks the reader thread parked in read().
            if backend.is_running(terminal_id):
                backend.stop(terminal_id)
            output.cancel()
            with suppress(asyncio.CancelledError):
                await output
            reader.shutdown(wait=False)
            logger.info("Terminal session finished terminal=%s", terminal_id)

    app.add_api_websocket_route(config.endpoint_path, terminal_socket)
    return app


def serve(config: BridgeConfig) -> None:
    import uvicorn

    app = create_app(config)
    logger.info("Starting terminal host on %s:%s", config.listen_host, config.listen_port)
    uvicorn.run(app, host=config.listen_host, port=config.listen_port, log_level="info")
