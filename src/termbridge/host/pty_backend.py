"""ptyprocess-backed PTY lifecycle for hosted shells."""

from __future__ import annotations

import atexit
import os
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass

from termbridge.errors import ExitCode, PtyError, TermBridgeError
from termbridge.terminal.models import Geometry

DEFAULT_TERM_TYPE = "xterm-256color"


@dataclass(frozen=True)
class PtyHandle:
    terminal_id: str
    command: tuple[str, ...]
    pid: int | None = None


PtySpawn = Callable[[list[str], str | None, dict[str, str] | None, Geometry], object]


def build_shell_command(shell: str = "") -> list[str]:
    resolved = shell.strip() or os.environ.get("SHELL", "").strip() or "/bin/sh"
    return [resolved]


def build_shell_env(term_type: str = DEFAULT_TERM_TYPE, base: dict[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    env["TERM"] = term_type
    return env


def _spawn_with_ptyprocess(
    command: list[str],
    cwd: str | None,
    env: dict[str, str] | None,
    geometry: Geometry,
) -> object:
    try:
        from ptyprocess import PtyProcess
    except Exception as exc:
        raise TermBridgeError(
            "ptyprocess backend is unavailable.",
            code=ExitCode.UNSUPPORTED_PLATFORM,
            hint="Run the terminal host on a POSIX system with ptyprocess installed.",
        ) from exc

    return PtyProcess.spawn(command, cwd=cwd, env=env, dimensions=(geometry.rows, geometry.cols))


class PtyBackend:
    def __init__(self, spawn: PtySpawn | None = None) -> None:
        self._spawn = spawn or _spawn_with_ptyprocess
        self._sessions: dict[str, object] = {}
        self._handles: dict[str, PtyHandle] = {}
        atexit.register(self.stop_all)

    def start(
        self,
        terminal_id: str,
        *,
        command: list[str] | None = None,
        shell: str = "",
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        geometry: Geometry | None = None,
    ) -> PtyHandle:
        if terminal_id in self._sessions:
            raise TermBridgeError(
                f"Terminal already started: {terminal_id}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Stop the current PTY session before starting a new one.",
            )

        resolved_command = list(command) if command else build_shell_command(shell)
        if not resolved_command or not resolved_command[0]:
            raise TermBridgeError(
                "PTY command cannot be empty.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Provide a shell command for the terminal host.",
            )

        try:
            process = self._spawn(resolved_command, cwd, env, geometry or Geometry())
        except TermBridgeError:
            raise
        except Exception as exc:
            raise PtyError(
                "Failed to start PTY process.",
                terminal_id=terminal_id,
                hint=str(exc) or "Check the shell installation.",
            ) from exc

        handle = PtyHandle(
            terminal_id=terminal_id,
            command=tuple(resolved_command),
            pid=getattr(process, "pid", None),
        )
        self._sessions[terminal_id] = process
        self._handles[terminal_id] = handle
        return handle

    def write(self, terminal_id: str, payload: bytes) -> None:
        process = self._require_session(terminal_id)
        try:
            process.write(payload)
        except Exception as exc:
            raise PtyError(
                "Failed to write to terminal.",
                terminal_id=terminal_id,
                hint=str(exc) or "Verify terminal process health.",
            ) from exc

    def read(self, terminal_id: str, *, max_bytes: int = 4096) -> bytes:
        """Blocking read; returns ``b""`` once the shell side has closed."""
        process = self._require_session(terminal_id)
        try:
            chunk = process.read(max_bytes)
        except EOFError:
            return b""
        except Exception as exc:
            raise PtyError(
                "Failed to read from terminal.",
                terminal_id=terminal_id,
                hint=str(exc) or "Verify PTY stream state.",
            ) from exc

        if chunk is None:
            return b""
        if isinstance(chunk, str):
            return chunk.encode("utf-8")
        return bytes(chunk)

    def resize(self, terminal_id: str, *, cols: int, rows: int) -> None:
        if cols <= 0 or rows <= 0:
            raise TermBridgeError(
                f"Invalid PTY size: {cols}x{rows}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use positive terminal row/column values.",
            )
        process = self._require_session(terminal_id)
        try:
            process.setwinsize(rows, cols)
        except Exception as exc:
            raise PtyError(
                "Failed to resize terminal.",
                terminal_id=terminal_id,
                hint=str(exc) or "Verify PTY backend supports resizing.",
            ) from exc

    def stop(self, terminal_id: str) -> None:
        process = self._sessions.pop(terminal_id, None)
        self._handles.pop(terminal_id, None)
        if process is None:
            raise TermBridgeError(
                f"Terminal not running: {terminal_id}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Select an active terminal session.",
            )
        self._close_session(process)

    def stop_all(self) -> None:
        for terminal_id in list(self._sessions):
            process = self._sessions.pop(terminal_id, None)
            self._handles.pop(terminal_id, None)
            if process is None:
                continue
            self._close_session(process)

    def is_running(self, terminal_id: str) -> bool:
        return terminal_id in self._sessions

    def list_handles(self) -> list[PtyHandle]:
        return [self._handles[key] for key in sorted(self._handles)]

    def _require_session(self, terminal_id: str) -> object:
        process = self._sessions.get(terminal_id)
        if process is None:
            raise TermBridgeError(
                f"Terminal not running: {terminal_id}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Start terminal before PTY I/O operations.",
            )
        return process

    def _close_session(self, process: object) -> None:
        if _is_alive(process) and hasattr(process, "terminate"):
            with suppress(Exception):
                process.terminate(force=True)
        if hasattr(process, "close"):
            with suppress(Exception):
                process.close(force=True)


def _is_alive(process: object) -> bool:
    if hasattr(process, "isalive"):
        try:
            return bool(process.isalive())
        except Exception:
            return True
    return True
