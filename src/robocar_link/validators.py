"""Post-connect GATT layout validators.

Each validator conforms to the ``Callable[[BleakClient], Awaitable[bool]]``
signature expected by the ``validate_connection`` parameter of
:func:`robocar_link.connection.establish_connection`.

Validators catch nothing themselves; ``establish_connection`` treats a
raised exception as a failed validation.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable

from bleak import BleakClient

from .const import ALL_CHANNELS, Channel

_LOGGER = logging.getLogger(__name__)


async def validate_gatt_services(client: BleakClient) -> bool:
    """Validate that GATT service discovery completed.

    Returns ``True`` if ``client.services`` is non-empty.  Some
    peripherals report the connect before service discovery finished,
    leaving the collection empty.
    """
    if not client.services:
        _LOGGER.debug(
            "validate_gatt_services: GATT services empty for %s",
            client.address,
        )
        return False
    return True


def validate_channels(
    channels: Iterable[Channel],
) -> Callable[[BleakClient], Awaitable[bool]]:
    """Create a validator that checks every channel exists.

    A channel matches when its characteristic UUID is found under its
    service UUID (case-insensitive).

    Usage::

        client = await establish_connection(
            BleakClient, device,
            validate_connection=validate_channels([COMMAND, TELEMETRY]),
        )
    """
    wanted = [
        (channel.service.lower(), channel.characteristic.lower())
        for channel in channels
    ]

    async def _validator(client: BleakClient) -> bool:
        if not await validate_gatt_services(client):
            return False

        present: set[tuple[str, str]] = set()
        for service in client.services:
            for char in service.characteristics:
                present.add((service.uuid.lower(), char.uuid.lower()))

        missing = [char for svc, char in wanted if (svc, char) not in present]
        if missing:
            _LOGGER.debug(
                "validate_channels: %s missing on %s",
                ", ".join(missing),
                client.address,
            )
            return False
        return True

    return _validator


validate_link_layout = validate_channels(ALL_CHANNELS)
validate_link_layout.__doc__ = (
    "Validate that all four controller characteristics are present."
)
