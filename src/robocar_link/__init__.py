"""robocar-link: BLE connectivity core for a remote-control car.

Discovers the car, keeps its heartbeat answered, relays mode and
joystick commands, and publishes one link state snapshot to any number
of observers.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .chooser import ChooserAdapter
from .codec import decode_text, encode_structured, encode_token
from .const import (
    ALL_CHANNELS,
    COMMAND,
    HEARTBEAT_IN,
    HEARTBEAT_OUT,
    IS_LINUX,
    SERVICE_UUID,
    TELEMETRY,
    Channel,
    LinkConfig,
    ScanOptions,
    WriteMode,
)
from .exceptions import (
    AdapterUnavailableError,
    BleConnectionError,
    LinkError,
    NotConnectedError,
    ScanFailureError,
    SubscriptionError,
    WriteError,
)
from .manager import LinkManager
from .native import NativeAdapter
from .state import LinkState, LinkStatus, ObserverRegistry
from .telemetry import TelemetryMessage, classify_telemetry
from .throttle import JoystickStream
from .transport import BleakGattAdapter, ScanResult, TransportAdapter

__all__ = [
    # Link manager
    "LinkManager",
    "LinkState",
    "LinkStatus",
    "ObserverRegistry",
    # Transports
    "TransportAdapter",
    "BleakGattAdapter",
    "NativeAdapter",
    "ChooserAdapter",
    "ScanResult",
    # Commands
    "JoystickStream",
    "encode_structured",
    "encode_token",
    "decode_text",
    # Telemetry
    "TelemetryMessage",
    "classify_telemetry",
    # Configuration / GATT layout
    "LinkConfig",
    "ScanOptions",
    "WriteMode",
    "Channel",
    "SERVICE_UUID",
    "HEARTBEAT_IN",
    "HEARTBEAT_OUT",
    "COMMAND",
    "TELEMETRY",
    "ALL_CHANNELS",
    "IS_LINUX",
    # Errors
    "LinkError",
    "AdapterUnavailableError",
    "ScanFailureError",
    "BleConnectionError",
    "SubscriptionError",
    "NotConnectedError",
    "WriteError",
]
