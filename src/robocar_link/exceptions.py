"""Exception hierarchy for robocar-link.

Transport adapters translate ``BleakError`` and timeouts into these
types so the link manager never has to know which BLE stack produced
the failure.
"""

from __future__ import annotations


class LinkError(Exception):
    """Base class for all robocar-link errors."""


class AdapterUnavailableError(LinkError):
    """The platform has no usable Bluetooth capability."""


class ScanFailureError(LinkError):
    """Discovery failed or finished without a usable device."""


class BleConnectionError(LinkError, ConnectionError):
    """The GATT connect was refused, timed out, or the layout is wrong."""


class SubscriptionError(LinkError):
    """Enabling notifications on a channel failed."""


class NotConnectedError(LinkError):
    """An operation needs an active session and there is none."""


class WriteError(LinkError):
    """A characteristic write failed at the transport level."""
