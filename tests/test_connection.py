"""Tests for connection module — the bounded single-attempt connect."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bleak import BleakClient
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from robocar_link.connection import establish_connection
from robocar_link.exceptions import BleConnectionError, LinkError


def _make_device(address="AA:BB:CC:DD:EE:FF", name="RoboCar"):
    return BLEDevice(
        address,
        name,
        {"path": f"/org/bluez/hci0/dev_{address.replace(':', '_')}"},
    )


@pytest.mark.asyncio
@patch("robocar_link.connection._brc_establish_connection")
async def test_successful_connection(mock_brc):
    mock_client = MagicMock(spec=BleakClient)
    mock_brc.return_value = mock_client

    device = _make_device()
    client = await establish_connection(BleakClient, device, "RoboCar", timeout=7.0)

    assert client is mock_client
    mock_brc.assert_called_once()
    call_kwargs = mock_brc.call_args
    assert call_kwargs.kwargs["max_attempts"] == 1
    assert call_kwargs.kwargs["timeout"] == 7.0
    assert call_kwargs.args[2] == "RoboCar"


@pytest.mark.asyncio
@patch("robocar_link.connection._brc_establish_connection")
async def test_extra_kwargs_passed_through(mock_brc):
    mock_brc.return_value = MagicMock(spec=BleakClient)
    callback = MagicMock()

    await establish_connection(
        BleakClient,
        _make_device(),
        disconnected_callback=callback,
        adapter="hci1",
    )

    kwargs = mock_brc.call_args.kwargs
    assert kwargs["disconnected_callback"] is callback
    assert kwargs["adapter"] == "hci1"


@pytest.mark.asyncio
@patch("robocar_link.connection._brc_establish_connection")
async def test_name_defaults_to_device_name(mock_brc):
    mock_brc.return_value = MagicMock(spec=BleakClient)
    await establish_connection(BleakClient, _make_device(name="Car7"))
    assert mock_brc.call_args.args[2] == "Car7"


@pytest.mark.asyncio
@patch("robocar_link.connection._brc_establish_connection")
async def test_no_retry_on_failure(mock_brc):
    mock_brc.side_effect = BleakError("connection refused")

    with pytest.raises(BleConnectionError, match="connection refused"):
        await establish_connection(BleakClient, _make_device())

    assert mock_brc.call_count == 1


@pytest.mark.asyncio
@patch("robocar_link.connection._brc_establish_connection")
async def test_eof_error_translated(mock_brc):
    mock_brc.side_effect = EOFError()

    with pytest.raises(BleConnectionError, match="connect failed"):
        await establish_connection(BleakClient, _make_device())


@pytest.mark.asyncio
@patch("robocar_link.connection._HARD_TIMEOUT_BUFFER", 0.0)
@patch("robocar_link.connection._brc_establish_connection")
async def test_hard_timeout(mock_brc):
    async def _hang(*args, **kwargs):
        await asyncio.sleep(10)

    mock_brc.side_effect = _hang

    with pytest.raises(BleConnectionError, match="timed out"):
        await establish_connection(BleakClient, _make_device(), timeout=0.05)


@pytest.mark.asyncio
@patch("robocar_link.connection._brc_establish_connection")
async def test_connection_error_is_link_error(mock_brc):
    mock_brc.side_effect = BleakError("gone")
    with pytest.raises(LinkError):
        await establish_connection(BleakClient, _make_device())
    with pytest.raises(ConnectionError):
        await establish_connection(BleakClient, _make_device())


@pytest.mark.asyncio
@patch("robocar_link.connection._brc_establish_connection")
async def test_validate_connection_success(mock_brc):
    mock_client = MagicMock(spec=BleakClient)
    mock_brc.return_value = mock_client

    validator = AsyncMock(return_value=True)

    client = await establish_connection(
        BleakClient,
        _make_device(),
        validate_connection=validator,
    )

    assert client is mock_client
    validator.assert_called_once_with(mock_client)


@pytest.mark.asyncio
@patch("robocar_link.connection._brc_establish_connection")
async def test_validate_connection_failure_tears_down(mock_brc):
    mock_client = MagicMock(spec=BleakClient)
    mock_client.disconnect = AsyncMock()
    mock_brc.return_value = mock_client

    validator = AsyncMock(return_value=False)

    with pytest.raises(BleConnectionError, match="GATT layout"):
        await establish_connection(
            BleakClient,
            _make_device(),
            validate_connection=validator,
        )

    assert mock_brc.call_count == 1
    mock_client.disconnect.assert_called_once()


@pytest.mark.asyncio
@patch("robocar_link.connection._brc_establish_connection")
async def test_validate_connection_exception_treated_as_failure(mock_brc):
    mock_client = MagicMock(spec=BleakClient)
    mock_client.disconnect = AsyncMock(side_effect=BleakError("already gone"))
    mock_brc.return_value = mock_client

    validator = AsyncMock(side_effect=RuntimeError("boom"))

    with pytest.raises(BleConnectionError, match="GATT layout"):
        await establish_connection(
            BleakClient,
            _make_device(),
            validate_connection=validator,
        )
