"""Stateless encode/decode of the payloads carried by the link.

Three outbound shapes exist: the heartbeat reply, short ASCII command
tokens, and compact JSON motion commands.  Inbound telemetry is plain
UTF-8 text and is decoded without interpretation.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping

from .const import AUTO_TOKEN, MANUAL_TOKEN, PONG_TOKEN

Number = int | float


def encode_token(token: str) -> bytes:
    """Encode a command token as ASCII.

    Raises ``ValueError`` for non-ASCII or empty tokens.
    """
    if not token:
        raise ValueError("Command token must not be empty")
    try:
        return token.encode("ascii")
    except UnicodeEncodeError as exc:
        raise ValueError(f"Command token {token!r} is not ASCII") from exc


# Pre-encoded so the heartbeat path does no work beyond the write.
HEARTBEAT_REPLY = encode_token(PONG_TOKEN)
MANUAL_COMMAND = encode_token(MANUAL_TOKEN)
AUTO_COMMAND = encode_token(AUTO_TOKEN)


def _normalize_number(key: str, value: object) -> Number:
    # bool is an int subclass but never a valid axis value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(
            f"Field {key!r} must be a number, got {type(value).__name__}"
        )
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Field {key!r} is not finite: {value!r}")
        if value.is_integer():
            return int(value)
    return value


def encode_structured(fields: Mapping[str, Number]) -> bytes:
    """Encode a flat mapping of numeric fields as compact JSON.

    Integral floats are written as integers so ``{"x": 0.5, "y": -1.0}``
    becomes ``{"x":0.5,"y":-1}``, which is what the peripheral parses.

    Raises ``ValueError`` for non-string keys, non-numeric values,
    booleans, NaN and infinities.
    """
    normalized: dict[str, Number] = {}
    for key, value in fields.items():
        if not isinstance(key, str):
            raise ValueError(f"Field names must be strings, got {key!r}")
        normalized[key] = _normalize_number(key, value)
    return json.dumps(normalized, separators=(",", ":")).encode("ascii")


def decode_text(payload: bytes | bytearray | memoryview) -> str:
    """Decode an inbound notification as UTF-8, replacing bad sequences."""
    return bytes(payload).decode("utf-8", errors="replace")
