"""Shared fixtures: a scripted in-memory transport adapter."""

from __future__ import annotations

import asyncio

import pytest

from robocar_link.const import Channel, ScanOptions, WriteMode
from robocar_link.exceptions import NotConnectedError
from robocar_link.transport import (
    DeviceCallback,
    LinkLostCallback,
    NotificationHandler,
    ScanResult,
    TransportAdapter,
)


class FakeAdapter(TransportAdapter):
    """Transport double whose every step can be scripted to fail or stall."""

    def __init__(self) -> None:
        self.devices: list[ScanResult] = [ScanResult("AA:BB:CC:DD:EE:FF", "RoboCar")]
        self.available = True
        self.scan_error: Exception | None = None
        self.connect_error: Exception | None = None
        self.connect_gate: asyncio.Event | None = None
        self.subscribe_errors: dict[Channel, Exception] = {}
        self.unsubscribe_error: Exception | None = None
        self.write_error: Exception | None = None
        self.disconnect_error: Exception | None = None
        self.on_subscribe = None

        self.calls: list[tuple] = []
        self.writes: list[tuple[Channel, bytes, WriteMode]] = []
        self.handlers: dict[Channel, NotificationHandler] = {}
        self.connected = False
        self.link_lost: LinkLostCallback | None = None

    async def is_available(self) -> bool:
        return self.available

    async def scan(self, on_device: DeviceCallback, options: ScanOptions) -> None:
        self.calls.append(("scan", options))
        if self.scan_error is not None:
            raise self.scan_error
        for device in self.devices:
            on_device(device)

    async def stop_scan(self) -> None:
        self.calls.append(("stop_scan",))

    async def connect(self, device: ScanResult) -> None:
        self.calls.append(("connect", device))
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def subscribe(self, channel: Channel, on_data: NotificationHandler) -> None:
        self.calls.append(("subscribe", channel))
        if not self.connected:
            raise NotConnectedError("Not connected")
        if channel in self.subscribe_errors:
            raise self.subscribe_errors[channel]
        self.handlers[channel] = on_data
        if self.on_subscribe is not None:
            await self.on_subscribe(channel, on_data)

    async def unsubscribe(self, channel: Channel) -> None:
        self.calls.append(("unsubscribe", channel))
        self.handlers.pop(channel, None)
        if self.unsubscribe_error is not None:
            raise self.unsubscribe_error

    async def write(self, channel: Channel, payload: bytes, mode: WriteMode) -> None:
        if not self.connected:
            raise NotConnectedError("Not connected")
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((channel, payload, mode))

    async def disconnect(self) -> None:
        self.calls.append(("disconnect",))
        self.connected = False
        self.handlers.clear()
        if self.disconnect_error is not None:
            raise self.disconnect_error

    def set_link_lost_callback(self, callback: LinkLostCallback | None) -> None:
        self.link_lost = callback

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()
