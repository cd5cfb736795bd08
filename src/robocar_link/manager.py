"""Link manager: the connection state machine and command API.

Owns the lifecycle of one peripheral connection::

    DISCONNECTED -> SCANNING -> DEVICE_FOUND -> CONNECTING
                 -> SUBSCRIBING -> SUBSCRIBED

Any phase can fall back to DISCONNECTED (``disconnect()``) or to FAILED
(an error during the connect sequence).  Outbound commands are only
accepted in SUBSCRIBED.

Every state change goes through :meth:`LinkManager._set_state`, which
replaces the snapshot and broadcasts it to all observers before
returning.

Each connect attempt takes a new *generation*.  ``disconnect()`` bumps
the generation too, so results of an abandoned attempt that resolve
late, and notifications routed to its handlers, are discarded instead
of overwriting the post-disconnect state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from functools import partial

from .codec import (
    AUTO_COMMAND,
    HEARTBEAT_REPLY,
    MANUAL_COMMAND,
    Number,
    decode_text,
    encode_structured,
)
from .const import (
    COMMAND,
    HEARTBEAT_IN,
    HEARTBEAT_OUT,
    MANUAL_TOKEN,
    TELEMETRY,
    LinkConfig,
    WriteMode,
)
from .exceptions import ScanFailureError
from .state import LinkState, LinkStatus, ObserverRegistry, StateObserver
from .transport import ScanResult, TransportAdapter

_LOGGER = logging.getLogger(__name__)

NOT_CONNECTED_MESSAGE = "Not connected. Cannot send command."
LINK_LOST_MESSAGE = "Connection lost"


class LinkManager:
    """Connect to the car, keep the heartbeat answered, relay commands.

    Parameters
    ----------
    adapter:
        The transport to drive.  Chosen by the application at startup;
        the manager never inspects which variant it is.
    config:
        Link configuration.  Only ``device_name`` and ``scan_options``
        are read here; the rest is for the transport.
    """

    def __init__(
        self,
        adapter: TransportAdapter,
        config: LinkConfig | None = None,
    ) -> None:
        self._adapter = adapter
        self._config = config or LinkConfig()
        self._observers = ObserverRegistry()
        self._state = LinkState()
        self._generation = 0
        self._attempt_active = False
        adapter.set_link_lost_callback(self._on_link_lost)

    @property
    def state(self) -> LinkState:
        """Return the current snapshot."""
        return self._state

    @property
    def config(self) -> LinkConfig:
        """Return the link configuration."""
        return self._config

    @property
    def generation(self) -> int:
        """Return the current attempt generation."""
        return self._generation

    # ── Observers ──────────────────────────────────────────────────

    def subscribe_observer(self, observer: StateObserver) -> None:
        """Register *observer* and immediately send it the current state."""
        self._observers.add(observer)
        self._observers.notify(observer, self._state)

    def unsubscribe_observer(self, observer: StateObserver) -> None:
        """Unregister *observer*.  Unknown observers are ignored."""
        self._observers.remove(observer)

    def _set_state(self, force: bool = False, **changes: object) -> None:
        new_state = self._state.evolve(**changes)
        if new_state == self._state and not force:
            return
        self._state = new_state
        _LOGGER.debug(
            "Link state: %s (error=%s)", new_state.status, new_state.error
        )
        self._observers.broadcast(new_state)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    # ── Connect / disconnect ───────────────────────────────────────

    async def connect(self) -> None:
        """Run one connect attempt: scan, connect, subscribe.

        Failures end the attempt in FAILED with ``error`` set; nothing
        is raised and nothing is retried.  Calling this while an attempt
        is running or the link is up is ignored.
        """
        if self._attempt_active or not self._state.phase.is_idle:
            _LOGGER.warning(
                "connect() ignored: link is %s", self._state.phase.value
            )
            return

        self._generation += 1
        generation = self._generation
        self._attempt_active = True
        try:
            await self._run_attempt(generation)
        except Exception as exc:
            if not self._is_current(generation):
                _LOGGER.debug(
                    "Discarding failure of superseded attempt %d: %s",
                    generation,
                    exc,
                )
                return
            _LOGGER.warning("Connection attempt failed: %s", exc)
            self._set_state(
                phase=LinkStatus.FAILED,
                error=str(exc) or type(exc).__name__,
            )
            # A half-open session (e.g. subscribe failed) must not linger.
            await self._release_transport()
        finally:
            if self._is_current(generation):
                self._attempt_active = False

    async def _run_attempt(self, generation: int) -> None:
        self._set_state(phase=LinkStatus.SCANNING, error=None, last_telemetry=None)
        device = await self._discover(generation)
        if not self._is_current(generation):
            return

        self._set_state(phase=LinkStatus.CONNECTING)
        await self._adapter.connect(device)
        if not self._is_current(generation):
            await self._drop_orphaned_session()
            return

        self._set_state(phase=LinkStatus.SUBSCRIBING)
        await self._adapter.subscribe(
            HEARTBEAT_IN, partial(self._handle_heartbeat, generation)
        )
        if not self._is_current(generation):
            await self._drop_orphaned_session()
            return
        await self._adapter.subscribe(
            TELEMETRY, partial(self._handle_telemetry, generation)
        )
        if not self._is_current(generation):
            await self._drop_orphaned_session()
            return

        self._set_state(phase=LinkStatus.SUBSCRIBED)
        _LOGGER.info("Link established with %s", device.display_name)

    def _is_usable(self, device: ScanResult) -> bool:
        wanted = self._config.device_name
        return wanted is None or device.name == wanted

    async def _discover(self, generation: int) -> ScanResult:
        """Scan until the first usable device shows up."""
        found: asyncio.Future[ScanResult] = asyncio.get_running_loop().create_future()

        def _on_device(device: ScanResult) -> None:
            if found.done() or not self._is_current(generation):
                return
            self._set_state(
                phase=LinkStatus.DEVICE_FOUND,
                status=f"Device found: {device.display_name}",
            )
            if self._is_usable(device):
                found.set_result(device)

        scan_task = asyncio.ensure_future(
            self._adapter.scan(_on_device, self._config.scan_options)
        )
        try:
            await asyncio.wait({found, scan_task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            scan_task.cancel()
            raise

        if found.done():
            await self._adapter.stop_scan()
            try:
                await scan_task
            except Exception:
                _LOGGER.debug("Scan ended with an error after a device was found", exc_info=True)
            return found.result()

        found.cancel()
        # Raises the scan's own error, if any.
        scan_task.result()
        raise ScanFailureError("Scan finished without finding a device")

    async def _drop_orphaned_session(self) -> None:
        """Close a session opened by an attempt that was superseded."""
        if self._attempt_active or not self._state.phase.is_idle:
            # A newer attempt owns the transport now.
            return
        _LOGGER.debug("Closing session left behind by a superseded attempt")
        await self._release_transport()

    async def _release_transport(self) -> None:
        try:
            await self._adapter.disconnect()
        except Exception:
            _LOGGER.debug("Transport teardown failed", exc_info=True)

    async def disconnect(self) -> None:
        """Tear the link down from any phase.

        Cancels an in-flight connect attempt from the caller's point of
        view.  Never raises; a transport teardown error is reported in
        ``error`` while the status still becomes DISCONNECTED.
        """
        self._generation += 1
        generation = self._generation
        self._attempt_active = False

        try:
            await self._adapter.stop_scan()
        except Exception:
            _LOGGER.debug("stop_scan failed during disconnect", exc_info=True)

        for channel in (HEARTBEAT_IN, TELEMETRY):
            try:
                await self._adapter.unsubscribe(channel)
            except Exception:
                _LOGGER.debug(
                    "Ignoring unsubscribe failure on %s",
                    channel.characteristic,
                    exc_info=True,
                )

        teardown_error: str | None = None
        try:
            await self._adapter.disconnect()
        except Exception as exc:
            _LOGGER.warning("Transport disconnect failed: %s", exc)
            teardown_error = str(exc) or type(exc).__name__

        if not self._is_current(generation):
            # A new attempt started while we were tearing down.
            return
        self._set_state(
            phase=LinkStatus.DISCONNECTED,
            error=teardown_error,
            last_telemetry=None,
        )

    def _on_link_lost(self) -> None:
        if self._state.phase is not LinkStatus.SUBSCRIBED:
            # An in-flight connect step will fail on its own.
            return
        _LOGGER.warning("Link to peripheral lost")
        self._generation += 1
        self._set_state(
            phase=LinkStatus.DISCONNECTED,
            error=LINK_LOST_MESSAGE,
            last_telemetry=None,
        )

    # ── Inbound ────────────────────────────────────────────────────

    async def _handle_heartbeat(self, generation: int, _data: bytes) -> None:
        # Presence of the ping is the signal; answer at once.
        if not self._is_current(generation):
            return
        try:
            await self._adapter.write(
                HEARTBEAT_OUT, HEARTBEAT_REPLY, WriteMode.WITHOUT_RESPONSE
            )
        except Exception as exc:
            _LOGGER.warning("Failed to send PONG: %s", exc)
            if self._is_current(generation):
                self._set_state(error=f"Failed to send PONG: {exc}")

    async def _handle_telemetry(self, generation: int, data: bytes) -> None:
        if not self._is_current(generation):
            return
        message = decode_text(data)
        _LOGGER.debug("Received telemetry: %s", message)
        # Every notification is broadcast, repeats included.
        self._set_state(force=True, last_telemetry=message)

    # ── Outbound ───────────────────────────────────────────────────

    async def send_manual_command(self) -> bool:
        """Switch the car to manual mode (acknowledged write).

        Returns ``True`` when the write succeeded.  Failures, including
        not being subscribed, are reported in ``error``.
        """
        self._set_state(error=None)
        if not self._state.is_subscribed:
            self._set_state(error=NOT_CONNECTED_MESSAGE)
            return False
        try:
            _LOGGER.debug("Sending '%s' command", MANUAL_TOKEN)
            await self._adapter.write(COMMAND, MANUAL_COMMAND, WriteMode.WITH_RESPONSE)
        except Exception as exc:
            self._set_state(error=f"Failed to send '{MANUAL_TOKEN}' command: {exc}")
            return False
        return True

    async def send_auto_command(self) -> bool:
        """Switch the car to autonomous mode (acknowledged write).

        Silently does nothing when not subscribed.
        """
        self._set_state(error=None)
        if not self._state.is_subscribed:
            return False
        try:
            await self._adapter.write(COMMAND, AUTO_COMMAND, WriteMode.WITH_RESPONSE)
        except Exception as exc:
            self._set_state(error=f"Cmd Error: {exc}")
            return False
        return True

    async def send_structured_command(self, fields: Mapping[str, Number]) -> bool:
        """Send a compact JSON command without waiting for acknowledgment.

        Meant for high-rate input such as joystick axes: failures are
        logged and never touch ``error``.
        """
        if not self._state.is_subscribed:
            return False
        try:
            payload = encode_structured(fields)
            await self._adapter.write(COMMAND, payload, WriteMode.WITHOUT_RESPONSE)
        except Exception as exc:
            _LOGGER.warning("Structured command send failed: %s", exc)
            return False
        return True
