"""Observer-side classification of telemetry text.

The link manager stores telemetry verbatim.  Screens that need to know
whether the car sent a bare mode token (``"MANUAL"``) or a JSON status
object use :func:`classify_telemetry` on ``LinkState.last_telemetry``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal

TelemetryKind = Literal["empty", "token", "json"]


@dataclass(frozen=True)
class TelemetryMessage:
    """A classified telemetry payload."""

    kind: TelemetryKind
    raw: str
    mode: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)


def classify_telemetry(text: str | None) -> TelemetryMessage:
    """Classify a telemetry payload as empty, a token, or a JSON object.

    JSON objects expose their ``mode`` field when it is a string.
    Anything that is not a JSON object (including JSON scalars and
    arrays) is treated as a token whose mode is the stripped text.
    """
    raw = text or ""
    stripped = raw.strip()
    if not stripped:
        return TelemetryMessage(kind="empty", raw=raw)

    if stripped.startswith("{"):
        try:
            decoded = json.loads(stripped)
        except ValueError:
            decoded = None
        if isinstance(decoded, dict):
            mode = decoded.get("mode")
            return TelemetryMessage(
                kind="json",
                raw=raw,
                mode=mode if isinstance(mode, str) else None,
                fields=decoded,
            )

    return TelemetryMessage(kind="token", raw=raw, mode=stripped)
