"""Snapshot BLE discovery with a hard timeout.

Wraps ``BleakScanner.discover()`` with:

- **Hard timeout**: ``asyncio.wait_for()`` around the scanner call,
  since some backends hang past their own ``timeout`` parameter.
- **Error translation**: ``BleakError`` and hard timeouts become
  :class:`ScanFailureError`; BlueZ ``InProgress`` (another process is
  already scanning the controller) gets its own message.

A single attempt only.  Retrying is the caller's decision.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from .const import DISCOVERY_TIMEOUT, IS_LINUX
from .exceptions import ScanFailureError

_LOGGER = logging.getLogger(__name__)

# Extra seconds added to the BleakScanner timeout to form the hard
# asyncio.wait_for timeout.  This gives BleakScanner a chance to
# return normally before the hard timeout fires.
_HARD_TIMEOUT_BUFFER = 5.0


def _is_inprogress(exc: BaseException) -> bool:
    """Check if an exception is an InProgress error."""
    err_str = str(exc).lower()
    return "inprogress" in err_str or "in progress" in err_str


async def discover(
    *,
    timeout: float = DISCOVERY_TIMEOUT,
    service_uuids: list[str] | None = None,
    adapter: str | None = None,
    **scanner_kwargs: Any,
) -> list[tuple[BLEDevice, AdvertisementData]]:
    """Discover advertising devices for *timeout* seconds.

    Parameters
    ----------
    timeout:
        Scan duration in seconds.
    service_uuids:
        Only return devices advertising one of these services.
        ``None`` returns everything.
    adapter:
        Host controller to scan on (Linux only).
    **scanner_kwargs:
        Additional keyword arguments passed to
        ``BleakScanner.discover()`` (e.g. ``scanning_mode``).

    Returns
    -------
    list[tuple[BLEDevice, AdvertisementData]]
        Discovered devices, strongest signal first.

    Raises
    ------
    ScanFailureError
        If the scanner errors or hangs.
    """
    hard_timeout = timeout + _HARD_TIMEOUT_BUFFER

    kwargs: dict[str, Any] = dict(scanner_kwargs)
    if service_uuids:
        kwargs["service_uuids"] = list(service_uuids)
    if IS_LINUX and adapter:
        kwargs.setdefault("adapter", adapter)

    _LOGGER.debug(
        "Discovering on %s (timeout=%.1f s)", adapter or "default adapter", timeout
    )
    try:
        found = await asyncio.wait_for(
            BleakScanner.discover(timeout=timeout, return_adv=True, **kwargs),
            timeout=hard_timeout,
        )
    except asyncio.TimeoutError as exc:
        _LOGGER.warning("Scanner hard timeout after %.0f s", hard_timeout)
        raise ScanFailureError(
            f"Scanner did not finish within {hard_timeout:.0f} s"
        ) from exc
    except BleakError as exc:
        if _is_inprogress(exc):
            raise ScanFailureError(
                "Another scan is already running on this adapter"
            ) from exc
        raise ScanFailureError(f"Scan failed: {exc}") from exc

    results = sorted(found.values(), key=lambda pair: pair[1].rssi, reverse=True)
    _LOGGER.debug("Discovered %d devices", len(results))
    return results
