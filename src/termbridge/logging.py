"""Application logging helpers."""

from __future__ import annotations

import logging as py_logging
import sys
from pathlib import Path
from typing import TextIO

LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
DEFAULT_LOG_PATH = Path("~/.config/termbridge/logs/termbridge.log")
_FALLBACK_LOG_PATH = Path(".termbridge/logs/termbridge.log")
_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"
# Chatty at INFO; only surfaced when the bridge itself runs at DEBUG.
_LIBRARY_LOGGERS = ("websockets", "uvicorn.access")


def default_log_path() -> Path:
    try:
        resolved = DEFAULT_LOG_PATH.expanduser()
    except RuntimeError:
        resolved = (Path.cwd() / _FALLBACK_LOG_PATH).resolve()
    else:
        if not resolved.is_absolute():
            resolved = resolved.resolve()
    return resolved


def resolve_level(level: str) -> int:
    normalized = level.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    return LOG_LEVELS.get(normalized, py_logging.INFO)


def _open_file_handler(log_file: str | Path, formatter: py_logging.Formatter) -> py_logging.Handler | None:
    try:
        log_path = Path(log_file).expanduser()
    except RuntimeError:
        log_path = Path(log_file)
    if not log_path.is_absolute():
        log_path = log_path.resolve()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = py_logging.FileHandler(log_path, encoding="utf-8")
    except OSError:
        return None
    handler.setLevel(py_logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
    console: bool = True,
) -> py_logging.Logger:
    """Configure the ``termbridge`` logger.

    ``console=False`` drops the stream handler entirely; attach mode needs this
    because stderr shares the raw-mode tty the remote shell is painting.
    """
    resolved = resolve_level(level)

    logger = py_logging.getLogger("termbridge")
    logger.setLevel(resolved)
    logger.handlers.clear()
    formatter = py_logging.Formatter(_FORMAT)

    if console:
        handler = py_logging.StreamHandler(stream or sys.stderr)
        handler.setLevel(resolved)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if log_file:
        file_handler = _open_file_handler(log_file, formatter)
        if file_handler is not None:
            logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(py_logging.NullHandler())

    library_level = py_logging.DEBUG if resolved <= py_logging.DEBUG else py_logging.WARNING
    for name in _LIBRARY_LOGGERS:
        py_logging.getLogger(name).setLevel(library_level)

    logger.propagate = False
    return logger
