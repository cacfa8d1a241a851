"""XDG config loading for the terminal bridge."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

DEFAULT_CONFIG_PATH = Path("~/.config/termbridge/config.toml").expanduser()
DEFAULT_SERVER_URL = "ws://127.0.0.1:8765"
DEFAULT_ENDPOINT_PATH = "/api/terminal/ws"
DEFAULT_LISTEN_HOST = "127.0.0.1"
DEFAULT_LISTEN_PORT = 8765
DEFAULT_TERM_TYPE = "xterm-256color"
DEFAULT_COLS = 80
DEFAULT_ROWS = 24
DEFAULT_MAX_SESSIONS = 8
URL_ENV = "TERMBRIDGE_URL"
SHELL_ENV = "TERMBRIDGE_SHELL"

_VALID_URL_SCHEMES = ("ws://", "wss://")


class TerminalTheme(BaseModel):
    """Cosmetic emulator settings, fixed for the lifetime of the process."""

    model_config = ConfigDict(frozen=True)

    font_family: str = 'ui-monospace, SFMono-Regular, "SF Mono", Menlo, monospace'
    font_size: int = Field(default=13, ge=6, le=72)
    cursor_blink: bool = True
    background: str = "#0f172a"
    foreground: str = "#e2e8f0"
    cursor: str = "#60a5fa"
    selection_background: str = "#334155"
    palette: tuple[str, ...] = (
        "#0f172a",
        "#ef4444",
        "#22c55e",
        "#eab308",
        "#3b82f6",
        "#a855f7",
        "#06b6d4",
        "#e2e8f0",
        "#475569",
        "#f87171",
        "#4ade80",
        "#facc15",
        "#60a5fa",
        "#c084fc",
        "#22d3ee",
        "#f8fafc",
    )

    @field_validator("palette")
    @classmethod
    def _validate_palette(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if len(value) != 16:
            raise ValueError(f"Palette needs 16 colours, got {len(value)}")
        return value


class BridgeConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    server_url: str = DEFAULT_SERVER_URL
    endpoint_path: str = DEFAULT_ENDPOINT_PATH
    listen_host: str = DEFAULT_LISTEN_HOST
    listen_port: int = Field(default=DEFAULT_LISTEN_PORT, ge=1, le=65535)
    shell: str = ""
    term_type: str = DEFAULT_TERM_TYPE
    default_cols: int = Field(default=DEFAULT_COLS, ge=1)
    default_rows: int = Field(default=DEFAULT_ROWS, ge=1)
    max_sessions: int = Field(default=DEFAULT_MAX_SESSIONS, ge=1, le=16)
    theme: TerminalTheme = Field(default_factory=TerminalTheme)

    @field_validator("server_url")
    @classmethod
    def _validate_server_url(cls, value: str) -> str:
        if not value.startswith(_VALID_URL_SCHEMES):
            raise ValueError(f"Invalid websocket URL: {value}")
        return value.rstrip("/")

    @field_validator("endpoint_path")
    @classmethod
    def _validate_endpoint_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"Endpoint path must start with '/': {value}")
        return value

    def websocket_url(self) -> str:
        return f"{self.server_url}{self.endpoint_path}"

    def resolve_shell(self) -> str:
        return self.shell or os.environ.get("SHELL", "") or "/bin/sh"


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _sanitize_theme(raw: object) -> TerminalTheme:
    if not isinstance(raw, dict):
        return TerminalTheme()
    accepted: dict[str, object] = {}
    for name, value in raw.items():
        if name not in TerminalTheme.model_fields:
            continue
        if name == "palette" and isinstance(value, list):
            value = tuple(value)
        try:
            TerminalTheme.model_validate({name: value})
        except ValidationError:
            continue
        accepted[name] = value
    return TerminalTheme.model_validate(accepted)


def _sanitize(raw: dict[str, object]) -> BridgeConfig:
    cfg = BridgeConfig()

    for name in BridgeConfig.model_fields:
        if name == "theme" or name not in raw:
            continue
        try:
            setattr(cfg, name, raw[name])
        except ValidationError:
            continue

    cfg.theme = _sanitize_theme(raw.get("theme", {}))

    env_url = os.getenv(URL_ENV, "").strip()
    if env_url:
        try:
            cfg.server_url = env_url
        except ValidationError:
            pass
    env_shell = os.getenv(SHELL_ENV, "").strip()
    if env_shell:
        cfg.shell = env_shell

    return cfg


def load_config(path: str | Path | None = None) -> BridgeConfig:
    resolved = get_config_path(path)
    raw: object = {}
    if resolved.exists():
        try:
            with resolved.open("rb") as handle:
                raw = tomllib.load(handle)
        except (tomllib.TOMLDecodeError, OSError):
            raw = {}
    if not isinstance(raw, dict):
        raw = {}
    return _sanitize(raw)
