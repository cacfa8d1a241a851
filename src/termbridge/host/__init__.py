"""Server side of the terminal protocol: PTY processes behind a websocket."""

from .pty_backend import PtyBackend, PtyHandle, build_shell_command, build_shell_env

__all__ = [
    "build_shell_command",
    "build_shell_env",
    "PtyBackend",
    "PtyHandle",
]
