"""Chooser transport: one device picked from a discovery snapshot.

Mirrors a browser-style GATT API: there is no passive scan.  A short
discovery window produces a candidate list, a caller-supplied chooser
(a prompt, a dialog, a test stub) picks one, and that single device is
reported.  :meth:`ChooserAdapter.stop_scan` has nothing to stop.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence

from bleak import BleakClient
from bleak.backends.device import BLEDevice

from .const import LinkConfig, ScanOptions
from .exceptions import AdapterUnavailableError, BleConnectionError, ScanFailureError
from .scanner import discover
from .transport import BleakGattAdapter, DeviceCallback, ScanResult

_LOGGER = logging.getLogger(__name__)

Chooser = Callable[[Sequence[ScanResult]], Awaitable[ScanResult | None]]


class ChooserAdapter(BleakGattAdapter):
    """Transport whose discovery is resolved by a user-driven chooser.

    Parameters
    ----------
    chooser:
        Async callable receiving the candidates (strongest signal
        first) and returning the chosen one, or ``None`` to cancel.
    config:
        Link configuration.  ``discovery_timeout`` sets the snapshot
        window.
    client_class:
        The ``BleakClient`` class (or subclass) to connect with.
    """

    def __init__(
        self,
        chooser: Chooser,
        config: LinkConfig | None = None,
        *,
        client_class: type[BleakClient] = BleakClient,
    ) -> None:
        super().__init__(config, client_class=client_class)
        self._chooser = chooser
        self._selected: ScanResult | None = None

    @property
    def selected(self) -> ScanResult | None:
        """Return the device picked by the last scan."""
        return self._selected

    async def scan(self, on_device: DeviceCallback, options: ScanOptions) -> None:
        if not await self.is_available():
            raise AdapterUnavailableError("No Bluetooth adapter available")

        found = await discover(
            timeout=self._config.discovery_timeout,
            service_uuids=None if options.accept_all else list(options.service_uuids),
            adapter=self._config.adapter,
        )
        candidates = [
            ScanResult(
                id=device.address,
                name=device.name or adv.local_name,
                rssi=adv.rssi,
                details=device,
            )
            for device, adv in found
        ]

        choice = await self._chooser(candidates)
        if choice is None:
            raise ScanFailureError("User cancelled the device chooser")
        _LOGGER.debug("Chooser picked %s", choice.display_name)
        self._selected = choice
        on_device(choice)

    async def stop_scan(self) -> None:
        """No-op: the chooser is driven by the user."""

    async def connect(self, device: ScanResult) -> None:
        """Connect to *device*.

        A handle without a ``BLEDevice`` (e.g. one rebuilt from a stored
        address) is resolved against the last chooser selection.
        """
        if not isinstance(device.details, BLEDevice):
            selected = self._selected
            if selected is None:
                raise BleConnectionError("No device selected yet (call scan first)")
            if device.id != selected.id:
                raise BleConnectionError(
                    f"{device.display_name} was not picked in the chooser"
                )
            device = selected
        await super().connect(device)
