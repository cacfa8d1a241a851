"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    TRANSPORT_ERROR = 5
    PTY_ERROR = 6
    VALIDATION_ERROR = 7
    UNSUPPORTED_PLATFORM = 8


@dataclass
class TermBridgeError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class ConfigError(TermBridgeError):
    """Settings from a file, the environment or the command line were rejected."""

    code: ExitCode = ExitCode.CONFIG_ERROR


@dataclass
class TransportClosed(TermBridgeError):
    """Raised by transports once the socket is closed or has failed."""

    code: ExitCode = ExitCode.TRANSPORT_ERROR


@dataclass
class PtyError(TermBridgeError):
    """A hosted shell could not be spawned, read, written or resized."""

    code: ExitCode = ExitCode.PTY_ERROR
    terminal_id: str = ""

    def __str__(self) -> str:
        text = super().__str__()
        if self.terminal_id:
            return f"[{self.terminal_id}] {text}"
        return text


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
