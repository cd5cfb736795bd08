"""Bounded single-attempt GATT connect wrapping bleak-retry-connector.

Calls ``bleak_retry_connector.establish_connection(max_attempts=1)``:
the link manager owns the attempt lifecycle and never retries on its
own, so the transport must not either.  On top of the upstream connect
this adds:

- A hard ``asyncio`` ceiling around the whole connect (the per-client
  ``timeout`` only bounds the BlueZ/CoreBluetooth call itself).
- Post-connect validation, tearing the session down when it fails.
- Translation of every failure into :class:`BleConnectionError`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from bleak import BleakClient
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from .const import CONNECT_TIMEOUT, DISCONNECT_TIMEOUT
from .exceptions import BleConnectionError

_LOGGER = logging.getLogger(__name__)

# Extra seconds on top of the client timeout before the hard
# asyncio.wait_for ceiling fires.  Gives the backend a chance to
# report its own timeout first.
_HARD_TIMEOUT_BUFFER = 5.0

try:
    from bleak_retry_connector import establish_connection as _brc_establish_connection
except ImportError as _exc:
    raise ImportError(
        "bleak-retry-connector is required: pip install bleak-retry-connector"
    ) from _exc


async def _safe_validate(
    validate_connection: Callable[[BleakClient], Awaitable[bool]],
    client: BleakClient,
) -> bool:
    """Run the validation callback, catching all exceptions."""
    try:
        return await validate_connection(client)
    except Exception:
        _LOGGER.debug(
            "validate_connection raised an exception, treating as failed",
            exc_info=True,
        )
        return False


async def establish_connection(
    client_class: type[BleakClient],
    device: BLEDevice,
    name: str | None = None,
    *,
    timeout: float = CONNECT_TIMEOUT,
    disconnected_callback: Callable[[BleakClient], None] | None = None,
    validate_connection: Callable[[BleakClient], Awaitable[bool]] | None = None,
    **kwargs: Any,
) -> BleakClient:
    """Open one GATT session to *device*.

    Parameters
    ----------
    client_class:
        The BleakClient class (or subclass) to use.
    device:
        The BLE device to connect to.
    name:
        Device name for logging.
    timeout:
        Connect timeout handed to the client.  The whole call is also
        capped at ``timeout`` plus a small buffer.
    disconnected_callback:
        Passed through to the client; fired when the session drops.
    validate_connection:
        Optional async callback ``(client) -> bool`` called after a
        successful connection.  If it returns ``False`` (or raises),
        the session is torn down and :class:`BleConnectionError` raised.
    **kwargs:
        Additional keyword arguments passed through to
        ``bleak_retry_connector.establish_connection()``.

    Returns
    -------
    BleakClient
        A connected BleakClient instance.

    Raises
    ------
    BleConnectionError
        On refusal, timeout, or failed validation.
    """
    display_name = name or device.name or device.address
    hard_timeout = timeout + _HARD_TIMEOUT_BUFFER

    _LOGGER.debug("%s: Connecting (timeout=%.1f s)", display_name, timeout)
    try:
        client = await asyncio.wait_for(
            _brc_establish_connection(
                client_class,
                device,
                display_name,
                disconnected_callback=disconnected_callback,
                max_attempts=1,
                timeout=timeout,
                **kwargs,
            ),
            timeout=hard_timeout,
        )
    except asyncio.TimeoutError as exc:
        raise BleConnectionError(
            f"{display_name}: connect timed out after {hard_timeout:.0f} s"
        ) from exc
    except (BleakError, EOFError, BrokenPipeError) as exc:
        raise BleConnectionError(str(exc) or f"{display_name}: connect failed") from exc

    if validate_connection is not None and not await _safe_validate(
        validate_connection, client
    ):
        _LOGGER.info("%s: validation failed, tearing down", display_name)
        try:
            await asyncio.wait_for(client.disconnect(), timeout=DISCONNECT_TIMEOUT)
        except Exception:
            _LOGGER.debug(
                "Disconnect after failed validation raised",
                exc_info=True,
            )
        raise BleConnectionError(
            f"{display_name}: GATT layout does not match the controller service"
        )

    _LOGGER.debug("%s: Connected", display_name)
    return client
