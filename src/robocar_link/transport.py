"""Transport adapter contract and the shared bleak-backed GATT session.

The link manager is written against :class:`TransportAdapter` only.
Concrete variants differ in how they discover a device
(:mod:`robocar_link.native` streams advertisements,
:mod:`robocar_link.chooser` resolves one device through a chooser) and
share everything after discovery through :class:`BleakGattAdapter`.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from bleak import BleakClient
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from .adapters import discover_adapters
from .connection import establish_connection
from .const import DISCONNECT_TIMEOUT, IS_LINUX, Channel, LinkConfig, ScanOptions, WriteMode
from .exceptions import BleConnectionError, NotConnectedError, SubscriptionError, WriteError
from .validators import validate_link_layout

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    """A discovered device.

    ``details`` is the transport's opaque handle (a ``BLEDevice`` for the
    bleak-backed variants) and is never inspected by the link manager.
    """

    id: str
    name: str | None = None
    rssi: int | None = None
    details: Any = field(default=None, compare=False, repr=False)

    @property
    def display_name(self) -> str:
        """Return the advertised name, falling back to the identifier."""
        return self.name or self.id


DeviceCallback = Callable[[ScanResult], None]
NotificationHandler = Callable[[bytes], Awaitable[None]]
LinkLostCallback = Callable[[], None]


class TransportAdapter(ABC):
    """Capability set the link manager depends on."""

    @abstractmethod
    async def is_available(self) -> bool:
        """Return whether the platform has a usable BLE capability."""

    @abstractmethod
    async def scan(self, on_device: DeviceCallback, options: ScanOptions) -> None:
        """Discover devices, calling *on_device* for each one found.

        Returns once discovery has finished or been stopped.  Raises
        ``AdapterUnavailableError`` or ``ScanFailureError``.
        """

    @abstractmethod
    async def stop_scan(self) -> None:
        """Stop a running scan.  No-op when not scanning."""

    @abstractmethod
    async def connect(self, device: ScanResult) -> None:
        """Open a GATT session to *device*.  Raises ``BleConnectionError``."""

    @abstractmethod
    async def subscribe(self, channel: Channel, on_data: NotificationHandler) -> None:
        """Enable notifications on *channel* and route them to *on_data*.

        Raises ``NotConnectedError`` or ``SubscriptionError``.
        """

    @abstractmethod
    async def unsubscribe(self, channel: Channel) -> None:
        """Disable notifications on *channel*.  Safe when not connected."""

    @abstractmethod
    async def write(self, channel: Channel, payload: bytes, mode: WriteMode) -> None:
        """Write *payload* to *channel*.

        Raises ``NotConnectedError`` or ``WriteError``.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Tear down the session and all subscriptions.  Idempotent."""

    @abstractmethod
    def set_link_lost_callback(self, callback: LinkLostCallback | None) -> None:
        """Register a callback fired when the session drops on its own."""


class BleakGattAdapter(TransportAdapter):
    """GATT session handling shared by the bleak-backed variants.

    Subclasses implement discovery (:meth:`scan`, :meth:`stop_scan`)
    and, where needed, :meth:`_resolve_device`.

    Parameters
    ----------
    config:
        Link configuration (connect timeout, host adapter).
    client_class:
        The ``BleakClient`` class (or subclass) to connect with.
    """

    def __init__(
        self,
        config: LinkConfig | None = None,
        *,
        client_class: type[BleakClient] = BleakClient,
    ) -> None:
        self._config = config or LinkConfig()
        self._client_class = client_class
        self._client: BleakClient | None = None
        self._subscriptions: dict[Channel, NotificationHandler] = {}
        self._handler_tasks: set[asyncio.Task[None]] = set()
        self._link_lost: LinkLostCallback | None = None

    @property
    def is_connected(self) -> bool:
        """Return whether a GATT session is open."""
        return self._client is not None

    @property
    def subscribed_channels(self) -> tuple[Channel, ...]:
        """Return the channels with an active notification handler."""
        return tuple(self._subscriptions)

    async def is_available(self) -> bool:
        # CoreBluetooth and WinRT always expose a radio to bleak;
        # on Linux a controller has to be present.
        if not IS_LINUX:
            return True
        return bool(discover_adapters())

    def set_link_lost_callback(self, callback: LinkLostCallback | None) -> None:
        self._link_lost = callback

    def _resolve_device(self, device: ScanResult) -> BLEDevice:
        if not isinstance(device.details, BLEDevice):
            raise BleConnectionError(
                f"{device.display_name}: unknown device handle (scan first)"
            )
        return device.details

    def _require_client(self) -> BleakClient:
        if self._client is None:
            raise NotConnectedError("Not connected")
        return self._client

    async def connect(self, device: ScanResult) -> None:
        ble_device = self._resolve_device(device)

        # One session at a time: a new connect discards the previous one.
        if self._client is not None:
            await self.disconnect()

        kwargs: dict[str, Any] = {}
        if IS_LINUX and self._config.adapter:
            kwargs["adapter"] = self._config.adapter

        client = await establish_connection(
            self._client_class,
            ble_device,
            device.display_name,
            timeout=self._config.connect_timeout,
            disconnected_callback=self._on_bleak_disconnect,
            validate_connection=validate_link_layout,
            **kwargs,
        )
        self._client = client
        _LOGGER.debug("%s: GATT session open", device.display_name)

    def _on_bleak_disconnect(self, client: BleakClient) -> None:
        if client is not self._client:
            return
        self._client = None
        self._subscriptions.clear()
        _LOGGER.info("%s: link dropped by peer", client.address)
        if self._link_lost is not None:
            self._link_lost()

    def _dispatch(self, on_data: NotificationHandler, data: bytes) -> None:
        task = asyncio.ensure_future(on_data(data))
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Task[None]) -> None:
        self._handler_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _LOGGER.error("Notification handler failed", exc_info=exc)

    async def subscribe(self, channel: Channel, on_data: NotificationHandler) -> None:
        client = self._require_client()
        if channel in self._subscriptions:
            raise SubscriptionError(
                f"Already subscribed to {channel.characteristic}"
            )

        def _callback(_sender: Any, data: bytearray) -> None:
            self._dispatch(on_data, bytes(data))

        try:
            await client.start_notify(channel.characteristic, _callback)
        except (BleakError, asyncio.TimeoutError) as exc:
            raise SubscriptionError(
                f"Failed to subscribe to {channel.characteristic}: {exc}"
            ) from exc
        self._subscriptions[channel] = on_data

    async def unsubscribe(self, channel: Channel) -> None:
        if self._subscriptions.pop(channel, None) is None or self._client is None:
            return
        try:
            await self._client.stop_notify(channel.characteristic)
        except Exception:
            _LOGGER.debug(
                "Error unsubscribing from %s",
                channel.characteristic,
                exc_info=True,
            )

    async def write(self, channel: Channel, payload: bytes, mode: WriteMode) -> None:
        client = self._require_client()
        try:
            await client.write_gatt_char(
                channel.characteristic, payload, response=mode.response
            )
        except (BleakError, asyncio.TimeoutError) as exc:
            raise WriteError(
                f"Write to {channel.characteristic} failed: {exc}"
            ) from exc

    async def disconnect(self) -> None:
        # Detach first so the disconnected callback sees a local close.
        client, self._client = self._client, None
        self._subscriptions.clear()
        if client is None:
            return
        try:
            await asyncio.wait_for(client.disconnect(), timeout=DISCONNECT_TIMEOUT)
        except asyncio.TimeoutError:
            _LOGGER.debug(
                "%s: disconnect timed out after %.0f s",
                client.address,
                DISCONNECT_TIMEOUT,
            )
        except BleakError as exc:
            raise BleConnectionError(f"Disconnect failed: {exc}") from exc
