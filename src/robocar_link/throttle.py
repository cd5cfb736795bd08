"""Rate-limited joystick stream on top of the structured command API.

A joystick widget can emit far more positions than the link should
carry.  :class:`JoystickStream` sends at most one position per
interval; positions arriving inside the interval overwrite a single
pending slot that is flushed when the interval elapses, so the car
always ends up at the latest position and never works through a
backlog.

Usage::

    stream = JoystickStream(manager, min_interval=0.05)

    # From the joystick widget:
    await stream.move(x, y)
    await stream.release()

    # When done:
    stream.stop()
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import TYPE_CHECKING

from .const import JOYSTICK_INTERVAL

if TYPE_CHECKING:
    from .manager import LinkManager

_LOGGER = logging.getLogger(__name__)

_AXIS_DIGITS = 3


def normalize_axis(value: float) -> float:
    """Clamp an axis to [-1, 1] and round it to three decimals.

    Raises ``ValueError`` for NaN and infinities.
    """
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"Axis value is not finite: {value!r}")
    return round(max(-1.0, min(1.0, value)), _AXIS_DIGITS)


class JoystickStream:
    """Throttle joystick positions into structured commands.

    Parameters
    ----------
    manager:
        The link manager whose ``send_structured_command`` is used.
    min_interval:
        Minimum seconds between two sends.
    """

    def __init__(
        self,
        manager: LinkManager,
        min_interval: float = JOYSTICK_INTERVAL,
    ) -> None:
        self._manager = manager
        self._min_interval = min_interval
        self._last_sent: float | None = None
        self._pending: dict[str, float] | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> dict[str, float] | None:
        """Return the position waiting to be flushed, if any."""
        return self._pending

    @property
    def is_flushing(self) -> bool:
        """Return whether a delayed flush is scheduled."""
        return self._task is not None and not self._task.done()

    def _remaining(self) -> float:
        if self._last_sent is None:
            return 0.0
        return self._min_interval - (time.monotonic() - self._last_sent)

    async def move(self, x: float, y: float) -> bool:
        """Report a joystick position.

        Returns ``True`` if it was sent right away, ``False`` if it was
        held for the next flush or the send failed.
        """
        fields = {"x": normalize_axis(x), "y": normalize_axis(y)}
        wait = self._remaining()
        if wait <= 0 and not self.is_flushing:
            return await self._send(fields)

        self._pending = fields
        if not self.is_flushing:
            self._task = asyncio.ensure_future(self._flush_later(wait))
        return False

    async def release(self) -> bool:
        """Center the stick immediately, dropping any pending position."""
        self._cancel_flush()
        return await self._send({"x": 0.0, "y": 0.0})

    def stop(self) -> None:
        """Cancel a scheduled flush.  Safe to call multiple times."""
        self._cancel_flush()

    def _cancel_flush(self) -> None:
        self._pending = None
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _flush_later(self, delay: float) -> None:
        try:
            await asyncio.sleep(max(delay, 0.0))
            fields, self._pending = self._pending, None
            self._task = None
            if fields is not None:
                await self._send(fields)
        except asyncio.CancelledError:
            pass

    async def _send(self, fields: dict[str, float]) -> bool:
        self._last_sent = time.monotonic()
        sent = await self._manager.send_structured_command(fields)
        if not sent:
            _LOGGER.debug("Joystick position %s not sent", fields)
        return sent
