"""Constants and configuration dataclasses for robocar-link."""

from __future__ import annotations

import platform
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

IS_LINUX = platform.system() == "Linux"

# ── GATT layout ────────────────────────────────────────────────────
#
# Must match the peripheral firmware exactly.  Both transport variants
# and the link manager address characteristics through these values.

SERVICE_UUID = "b07498ca-ad5b-474e-940d-16f1a71141e0"
PING_CHAR_UUID = "c1ff12bb-3ed8-46e5-b4f9-a6ca6092d345"
PONG_CHAR_UUID = "d7add780-b042-4876-aae1-112855353cc1"
COMMAND_CHAR_UUID = "e2f3c4d5-6789-4abc-def0-1234567890ab"
DATA_CHAR_UUID = "f1e2d3c4-b5a6-4789-8abc-0def12345678"


class Channel(NamedTuple):
    """A (service, characteristic) address on the peripheral."""

    service: str
    characteristic: str


HEARTBEAT_IN = Channel(SERVICE_UUID, PING_CHAR_UUID)
HEARTBEAT_OUT = Channel(SERVICE_UUID, PONG_CHAR_UUID)
COMMAND = Channel(SERVICE_UUID, COMMAND_CHAR_UUID)
TELEMETRY = Channel(SERVICE_UUID, DATA_CHAR_UUID)

ALL_CHANNELS = (HEARTBEAT_IN, HEARTBEAT_OUT, COMMAND, TELEMETRY)

# ── Fixed payload tokens ───────────────────────────────────────────

PONG_TOKEN = "PONG"
MANUAL_TOKEN = "MANUAL"
AUTO_TOKEN = "START"

# ── Timeouts ───────────────────────────────────────────────────────

# Bounded GATT connect.
CONNECT_TIMEOUT = 10.0

# How long a streaming scan runs before giving up on finding a device.
SCAN_TIMEOUT = 15.0

# Snapshot discovery window used by the chooser transport.
DISCOVERY_TIMEOUT = 5.0

# How long to wait for a disconnect to complete before giving up.
DISCONNECT_TIMEOUT = 5.0

# Minimum spacing between structured joystick writes (20 Hz).
JOYSTICK_INTERVAL = 0.05


class WriteMode(str, Enum):
    """Reliability hint for characteristic writes."""

    WITH_RESPONSE = "with_response"
    WITHOUT_RESPONSE = "without_response"

    @property
    def response(self) -> bool:
        """Return the ``response`` flag for ``BleakClient.write_gatt_char``."""
        return self is WriteMode.WITH_RESPONSE


@dataclass(frozen=True)
class ScanOptions:
    """Discovery options passed to :meth:`TransportAdapter.scan`.

    Parameters
    ----------
    service_uuids:
        Only report devices advertising one of these services.  The
        chooser transport also uses them to restrict which services the
        session may access.
    accept_all:
        Report every advertising device regardless of *service_uuids*.
    """

    service_uuids: tuple[str, ...] = (SERVICE_UUID,)
    accept_all: bool = False


@dataclass
class LinkConfig:
    """Configuration for a :class:`~robocar_link.manager.LinkManager` and
    the transport adapters it drives.

    Parameters
    ----------
    connect_timeout:
        Seconds allowed for the GATT connect.  A timeout fails the
        attempt like any other connection error.
    scan_timeout:
        Seconds a streaming scan runs before the attempt fails with
        ``ScanFailureError``.
    discovery_timeout:
        Length of the discovery snapshot shown to a chooser.
    device_name:
        If set, only devices advertising exactly this name are used.
        Other discoveries still update the status label.
    adapter:
        Host Bluetooth controller to use (e.g. ``"hci0"``).  ``None``
        lets the platform pick.
    joystick_interval:
        Minimum seconds between structured joystick writes.
    scan_options:
        Options handed to the transport's ``scan()``.
    """

    connect_timeout: float = CONNECT_TIMEOUT
    scan_timeout: float = SCAN_TIMEOUT
    discovery_timeout: float = DISCOVERY_TIMEOUT
    device_name: str | None = None
    adapter: str | None = None
    joystick_interval: float = JOYSTICK_INTERVAL
    scan_options: ScanOptions = field(default_factory=ScanOptions)
