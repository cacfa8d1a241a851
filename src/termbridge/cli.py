"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging as py_logging
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from urllib.parse import urlsplit

from pydantic import ValidationError

from .config import BridgeConfig, TerminalTheme, load_config
from .errors import ConfigError, ExitCode, TermBridgeError, user_facing_error
from .logging import configure_logging, default_log_path
from .terminal.emulator import EmulatorFactory
from .terminal.local import LocalTerminal
from .terminal.models import Geometry, SessionState
from .terminal.session import TerminalSession
from .terminal.transport import TransportFactory, WebSocketTransport

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")

logger = py_logging.getLogger(__name__)


def _log_level_type(value: str) -> str:
    normalized = value.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def _port_type(value: str) -> int:
    try:
        port = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--port must be an integer") from exc
    if port < 1 or port > 65535:
        raise argparse.ArgumentTypeError("--port must be between 1 and 65535")
    return port


def _dimension_type(value: str) -> int:
    try:
        size = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("terminal size must be an integer") from exc
    if size < 1:
        raise argparse.ArgumentTypeError("terminal size must be at least 1")
    return size


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="termbridge")
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--log-level", type=_log_level_type, default="INFO")
    parser.add_argument("--log-file", type=Path, default=None)
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Host shells for terminal clients")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=_port_type, default=None)
    serve.add_argument("--shell", default=None)

    attach = commands.add_parser("attach", help="Drive a hosted shell from this terminal")
    attach.add_argument("url", nargs="?", default=None, help="Websocket URL of the terminal endpoint")
    attach.add_argument("--cols", type=_dimension_type, default=None)
    attach.add_argument("--rows", type=_dimension_type, default=None)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def resolve_config(namespace: argparse.Namespace) -> BridgeConfig:
    config = load_config(namespace.config)
    overrides = {
        "listen_host": getattr(namespace, "host", None),
        "listen_port": getattr(namespace, "port", None),
        "shell": getattr(namespace, "shell", None),
        "default_cols": getattr(namespace, "cols", None),
        "default_rows": getattr(namespace, "rows", None),
    }
    try:
        for name, value in overrides.items():
            if value is not None:
                setattr(config, name, value)
        url = getattr(namespace, "url", None)
        if url:
            parts = urlsplit(url)
            config.server_url = f"{parts.scheme}://{parts.netloc}"
            if parts.path not in ("", "/"):
                config.endpoint_path = parts.path
    except ValidationError as exc:
        raise ConfigError(
            "Invalid configuration override.",
            hint=str(exc.errors()[0]["msg"]),
        ) from exc
    return config


async def attach(
    config: BridgeConfig,
    *,
    transport_factory: TransportFactory | None = None,
    emulator_factory: EmulatorFactory | None = None,
) -> TerminalSession:
    """Bridge this process's terminal to a hosted shell until either side ends."""
    url = config.websocket_url()
    sockets: list[WebSocketTransport] = []

    def local_emulator(geometry: Geometry, theme: TerminalTheme) -> LocalTerminal:
        return LocalTerminal(geometry, theme, on_detach=session.close)

    def websocket_transport() -> WebSocketTransport:
        transport = WebSocketTransport(url)
        sockets.append(transport)
        return transport

    session = TerminalSession(
        transport_factory=transport_factory or websocket_transport,
        emulator_factory=emulator_factory or local_emulator,
        view_id="attach",
        geometry=Geometry(cols=config.default_cols, rows=config.default_rows),
        theme=config.theme,
    )
    logger.debug("Attaching to %s", url)
    session.open()
    await session.wait_closed()
    for transport in sockets:
        await transport.wait_closed()
    return session


def run_attach(config: BridgeConfig) -> int:
    session = asyncio.run(attach(config))
    reached = {event.step for event in session.list_events()}
    if SessionState.CONNECTED.value not in reached and session.last_error is not None:
        raise session.last_error
    return int(ExitCode.SUCCESS)


def run_serve(config: BridgeConfig) -> int:
    from .host.app import serve

    serve(config)
    return int(ExitCode.SUCCESS)


def main(
    argv: Sequence[str] | None = None,
    *,
    attach_runner: Callable[[BridgeConfig], int] | None = None,
    serve_runner: Callable[[BridgeConfig], int] | None = None,
) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    # Attach owns the tty in raw mode; log to the file only.
    logger = configure_logging(
        level=namespace.log_level,
        log_file=log_path,
        console=namespace.command != "attach",
    )

    try:
        config = resolve_config(namespace)
        if namespace.command == "serve":
            logger.debug("Starting terminal host")
            return (serve_runner or run_serve)(config)
        logger.debug("Starting attach flow")
        return (attach_runner or run_attach)(config)
    except TermBridgeError as exc:
        logger.error(
            "Handled TermBridgeError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        try:
            hint = f"Inspect logs: {log_path}"
            print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        except Exception:
            pass
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
