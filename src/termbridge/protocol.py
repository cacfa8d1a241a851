"""Framing helpers for the terminal websocket.

Frame kinds ride on the transport's own message types: control frames are
UTF-8 JSON text messages and data frames are binary messages holding raw
terminal bytes with no further envelope.
"""

from __future__ import annotations

import json
import logging as py_logging
from dataclasses import dataclass
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = py_logging.getLogger(__name__)


@dataclass(frozen=True)
class TextMessage:
    text: str


@dataclass(frozen=True)
class BinaryMessage:
    payload: bytes


Message = Union[TextMessage, BinaryMessage]


class ResizeControl(BaseModel):
    """Intended pty geometry, sent client to server."""

    model_config = ConfigDict(frozen=True)

    type: Literal["resize"] = "resize"
    cols: int = Field(ge=1, le=65535)
    rows: int = Field(ge=1, le=65535)


class ErrorControl(BaseModel):
    """Host-side failure notice, sent server to client."""

    model_config = ConfigDict(frozen=True)

    type: Literal["error"] = "error"
    message: str


ControlFrame = Annotated[Union[ResizeControl, ErrorControl], Field(discriminator="type")]

_CONTROL_ADAPTER: TypeAdapter[ResizeControl | ErrorControl] = TypeAdapter(ControlFrame)


@dataclass(frozen=True)
class DataFrame:
    payload: bytes


def encode_control(frame: ResizeControl | ErrorControl) -> TextMessage:
    return TextMessage(json.dumps(frame.model_dump(), separators=(",", ":")))


def encode_data(payload: bytes | str) -> BinaryMessage:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return BinaryMessage(bytes(payload))


def parse_control(text: str | bytes) -> ResizeControl | ErrorControl | None:
    """Parse a control frame; anything malformed or unknown yields ``None``."""
    try:
        return _CONTROL_ADAPTER.validate_json(text)
    except ValidationError as exc:
        logger.debug("Dropping malformed control message errors=%s", exc.error_count())
        return None


def decode_message(message: Message) -> ResizeControl | ErrorControl | DataFrame | None:
    if isinstance(message, BinaryMessage):
        return DataFrame(message.payload)
    return parse_control(message.text)
