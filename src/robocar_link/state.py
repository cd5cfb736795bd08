"""Link state snapshot and observer registry.

The link manager is the only writer of :class:`LinkState`.  Every
mutation builds a new frozen snapshot and hands it to
:meth:`ObserverRegistry.broadcast`, so observers never see a partially
updated state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum

_LOGGER = logging.getLogger(__name__)


class LinkStatus(str, Enum):
    """Phases of the connection state machine."""

    DISCONNECTED = "disconnected"
    SCANNING = "scanning"
    DEVICE_FOUND = "device_found"
    CONNECTING = "connecting"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"
    FAILED = "failed"

    @property
    def label(self) -> str:
        """Return the default display label for this phase."""
        return _LABELS[self]

    @property
    def is_idle(self) -> bool:
        """Return whether a new connect attempt may start from here."""
        return self in (LinkStatus.DISCONNECTED, LinkStatus.FAILED)


_LABELS = {
    LinkStatus.DISCONNECTED: "Disconnected",
    LinkStatus.SCANNING: "Scanning...",
    LinkStatus.DEVICE_FOUND: "Device found",
    LinkStatus.CONNECTING: "Connecting...",
    LinkStatus.SUBSCRIBING: "Connected. Subscribing...",
    LinkStatus.SUBSCRIBED: "Subscribed! RTT loop active.",
    LinkStatus.FAILED: "Failed to connect",
}


@dataclass(frozen=True)
class LinkState:
    """Immutable snapshot of the link, replaced wholesale on every change.

    ``status`` is the human-readable label shown by observers; ``phase``
    is the machine state it was derived from.
    """

    phase: LinkStatus = LinkStatus.DISCONNECTED
    status: str = LinkStatus.DISCONNECTED.label
    error: str | None = None
    last_telemetry: str | None = None

    @property
    def is_subscribed(self) -> bool:
        """Return whether outbound commands are accepted."""
        return self.phase is LinkStatus.SUBSCRIBED

    def evolve(self, **changes: object) -> LinkState:
        """Return a copy with *changes* applied.

        Changing ``phase`` without an explicit ``status`` resets the
        label to the phase default.
        """
        if "phase" in changes and "status" not in changes:
            changes["status"] = LinkStatus(changes["phase"]).label
        return replace(self, **changes)  # type: ignore[arg-type]


StateObserver = Callable[[LinkState], None]


class ObserverRegistry:
    """Identity-keyed, insertion-ordered set of state observers.

    A broadcast iterates over a snapshot of the registrations taken when
    it starts, so adding or removing observers from inside a callback
    only affects later broadcasts.  An observer that raises is logged
    and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._observers: list[StateObserver] = []

    def __len__(self) -> int:
        return len(self._observers)

    def __contains__(self, observer: object) -> bool:
        return any(registered is observer for registered in self._observers)

    def add(self, observer: StateObserver) -> bool:
        """Register *observer*.  Returns ``False`` if already registered."""
        if observer in self:
            return False
        self._observers.append(observer)
        return True

    def remove(self, observer: StateObserver) -> bool:
        """Unregister *observer* by identity.  Unknown observers are ignored."""
        for idx, registered in enumerate(self._observers):
            if registered is observer:
                del self._observers[idx]
                return True
        return False

    def notify(self, observer: StateObserver, state: LinkState) -> None:
        """Deliver *state* to a single observer."""
        try:
            observer(state)
        except Exception:
            _LOGGER.exception("State observer %r failed", observer)

    def broadcast(self, state: LinkState) -> None:
        """Deliver *state* to every observer in registration order."""
        for observer in tuple(self._observers):
            self.notify(observer, state)
