"""Tests for throttle module."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from robocar_link.throttle import JoystickStream, normalize_axis


def _make_manager(sent=True):
    manager = MagicMock()
    manager.send_structured_command = AsyncMock(return_value=sent)
    return manager


def _sent_fields(manager):
    return [c.args[0] for c in manager.send_structured_command.call_args_list]


def test_normalize_axis_clamps():
    assert normalize_axis(2.5) == 1.0
    assert normalize_axis(-7) == -1.0
    assert normalize_axis(0.12345) == 0.123


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_normalize_axis_rejects_non_finite(value):
    with pytest.raises(ValueError):
        normalize_axis(value)


@pytest.mark.asyncio
async def test_first_move_sent_immediately():
    manager = _make_manager()
    stream = JoystickStream(manager, min_interval=10.0)

    assert await stream.move(0.5, -1.5) is True
    assert _sent_fields(manager) == [{"x": 0.5, "y": -1.0}]
    assert not stream.is_flushing


@pytest.mark.asyncio
async def test_moves_inside_interval_coalesce_to_latest():
    manager = _make_manager()
    stream = JoystickStream(manager, min_interval=0.1)

    await stream.move(0.1, 0.1)
    assert await stream.move(0.2, 0.2) is False
    assert await stream.move(0.3, 0.3) is False
    assert stream.pending == {"x": 0.3, "y": 0.3}
    assert stream.is_flushing

    await asyncio.sleep(0.3)

    assert _sent_fields(manager) == [{"x": 0.1, "y": 0.1}, {"x": 0.3, "y": 0.3}]
    assert stream.pending is None
    assert not stream.is_flushing


@pytest.mark.asyncio
async def test_move_after_interval_sends_again():
    manager = _make_manager()
    stream = JoystickStream(manager, min_interval=0.05)

    await stream.move(0.1, 0.0)
    await asyncio.sleep(0.1)
    assert await stream.move(0.2, 0.0) is True
    assert len(_sent_fields(manager)) == 2


@pytest.mark.asyncio
async def test_release_drops_pending_and_centers():
    manager = _make_manager()
    stream = JoystickStream(manager, min_interval=10.0)

    await stream.move(1.0, 1.0)
    await stream.move(0.9, 0.9)
    assert await stream.release() is True

    assert stream.pending is None
    assert not stream.is_flushing
    assert _sent_fields(manager) == [{"x": 1.0, "y": 1.0}, {"x": 0.0, "y": 0.0}]


@pytest.mark.asyncio
async def test_stop_cancels_flush():
    manager = _make_manager()
    stream = JoystickStream(manager, min_interval=0.05)

    await stream.move(0.1, 0.1)
    await stream.move(0.2, 0.2)
    stream.stop()
    stream.stop()  # Should be no-op
    await asyncio.sleep(0.15)

    assert len(_sent_fields(manager)) == 1


@pytest.mark.asyncio
async def test_failed_send_returns_false():
    manager = _make_manager(sent=False)
    stream = JoystickStream(manager, min_interval=0.05)
    assert await stream.move(0.5, 0.5) is False


@pytest.mark.asyncio
async def test_invalid_axis_raises_before_sending():
    manager = _make_manager()
    stream = JoystickStream(manager)
    with pytest.raises(ValueError):
        await stream.move(float("nan"), 0.0)
    manager.send_structured_command.assert_not_called()
