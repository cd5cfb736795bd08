"""Native-stack transport: streaming discovery through ``BleakScanner``.

Advertisements are reported as they arrive, each device once, until
:meth:`NativeAdapter.stop_scan` is called or the scan timeout expires.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from .adapters import discover_adapters, pick_adapter
from .const import IS_LINUX, LinkConfig, ScanOptions
from .exceptions import AdapterUnavailableError, ScanFailureError
from .transport import BleakGattAdapter, DeviceCallback, ScanResult

_LOGGER = logging.getLogger(__name__)


class NativeAdapter(BleakGattAdapter):
    """Transport backed by the operating system's BLE stack.

    Parameters
    ----------
    config:
        Link configuration.  ``scan_timeout`` bounds each scan.
    client_class:
        The ``BleakClient`` class (or subclass) to connect with.
    scanner_class:
        The ``BleakScanner`` class (or subclass) to scan with.
    """

    def __init__(
        self,
        config: LinkConfig | None = None,
        *,
        client_class: type[BleakClient] = BleakClient,
        scanner_class: type[BleakScanner] = BleakScanner,
    ) -> None:
        super().__init__(config, client_class=client_class)
        self._scanner_class = scanner_class
        self._scanner: BleakScanner | None = None
        self._scan_stopped: asyncio.Event | None = None

    @property
    def is_scanning(self) -> bool:
        """Return whether a scan is running."""
        return self._scan_stopped is not None

    async def scan(self, on_device: DeviceCallback, options: ScanOptions) -> None:
        if self._scan_stopped is not None:
            _LOGGER.debug("Scan already running, ignoring")
            return
        if not await self.is_available():
            raise AdapterUnavailableError("No Bluetooth adapter available")

        seen: set[str] = set()

        def _detection(device: BLEDevice, adv: AdvertisementData) -> None:
            if device.address in seen:
                return
            seen.add(device.address)
            on_device(
                ScanResult(
                    id=device.address,
                    name=device.name or adv.local_name,
                    rssi=adv.rssi,
                    details=device,
                )
            )

        kwargs: dict[str, Any] = {}
        if not options.accept_all:
            kwargs["service_uuids"] = list(options.service_uuids)
        if IS_LINUX:
            adapter = pick_adapter(discover_adapters(), self._config.adapter)
            if adapter is not None:
                kwargs["adapter"] = adapter

        scanner = self._scanner_class(detection_callback=_detection, **kwargs)
        # Registered before start() so a stop_scan() issued while the
        # backend is still starting is not lost.
        stopped = asyncio.Event()
        self._scan_stopped = stopped
        timeout = self._config.scan_timeout
        try:
            try:
                await scanner.start()
            except BleakError as exc:
                raise ScanFailureError(f"Scan failed: {exc}") from exc
            self._scanner = scanner

            _LOGGER.debug("Scanning (timeout=%.1f s)", timeout)
            try:
                await asyncio.wait_for(stopped.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                if not seen:
                    raise ScanFailureError(
                        f"No device found within {timeout:.0f} s"
                    ) from None
                _LOGGER.debug("Scan window elapsed with %d devices seen", len(seen))
        finally:
            if self._scan_stopped is stopped:
                self._scan_stopped = None
            if self._scanner is scanner:
                await self._stop_scanner()

    async def stop_scan(self) -> None:
        stopped, self._scan_stopped = self._scan_stopped, None
        if stopped is None:
            return
        stopped.set()
        await self._stop_scanner()

    async def _stop_scanner(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except BleakError:
            _LOGGER.debug("Failed to stop scanner", exc_info=True)
