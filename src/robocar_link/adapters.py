"""Host Bluetooth controller enumeration.

Wraps ``bluetooth-adapters`` for enumeration, with a ``/sys`` fallback.
Used to decide whether the platform can do BLE at all and which
controller a scan or connect should go through.
"""

from __future__ import annotations

import logging
import pathlib

from .const import IS_LINUX

_LOGGER = logging.getLogger(__name__)

_SYS_BLUETOOTH = pathlib.Path("/sys/class/bluetooth")


def discover_adapters() -> list[str]:
    """Discover Bluetooth controllers on a Linux host.

    Uses ``bluetooth-adapters`` when it can enumerate, falls back to
    ``/sys/class/bluetooth/`` enumeration.

    Returns a sorted list of adapter names (e.g. ``["hci0", "hci1"]``),
    or an empty list when no controller is present.  Always empty off
    Linux, where the OS BLE stack does not expose controllers by name.
    """
    if not IS_LINUX:
        return []

    # Try bluetooth-adapters first (more reliable, handles USB adapters)
    try:
        from bluetooth_adapters import get_adapters_from_hci

        adapters_from_hci = get_adapters_from_hci()
        if adapters_from_hci:
            names = sorted(a["name"] for a in adapters_from_hci.values())
            if names:
                _LOGGER.debug("Discovered adapters via bluetooth-adapters: %s", names)
                return names
    except Exception:
        _LOGGER.debug(
            "bluetooth-adapters enumeration failed, trying /sys",
            exc_info=True,
        )

    # Fallback: /sys/class/bluetooth/
    try:
        if _SYS_BLUETOOTH.exists():
            adapters = sorted(
                d.name for d in _SYS_BLUETOOTH.iterdir() if d.name.startswith("hci")
            )
            if adapters:
                _LOGGER.debug("Discovered adapters via /sys: %s", adapters)
                return adapters
    except OSError:
        _LOGGER.debug("Failed to enumerate /sys/class/bluetooth", exc_info=True)

    return []


def pick_adapter(adapters: list[str], preferred: str | None = None) -> str | None:
    """Pick the controller to use.

    Returns *preferred* when it is present, otherwise the first
    discovered adapter, or ``None`` when the list is empty.
    """
    if not adapters:
        return None
    if preferred is not None:
        if preferred in adapters:
            return preferred
        _LOGGER.warning(
            "Adapter %s not found (have %s), using %s",
            preferred,
            ", ".join(adapters),
            adapters[0],
        )
    return adapters[0]
