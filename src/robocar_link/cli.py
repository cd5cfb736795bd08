"""
Command-line interface for robocar-link.

This is the composition root: the transport variant is chosen once
from the command line and injected into a :class:`LinkManager`.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from collections.abc import Sequence

from . import __version__
from .chooser import ChooserAdapter
from .const import CONNECT_TIMEOUT, SCAN_TIMEOUT, LinkConfig, ScanOptions
from .manager import LinkManager
from .native import NativeAdapter
from .state import LinkState
from .telemetry import classify_telemetry
from .throttle import JoystickStream
from .transport import ScanResult, TransportAdapter

_LOGGER = logging.getLogger(__name__)


def parse_args(args: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="robocar-link",
        description="Drive a BLE remote-control car from the terminal",
    )
    parser.add_argument("--version", action="version", version=f"robocar-link {__version__}")
    parser.add_argument(
        "--transport",
        choices=["native", "chooser"],
        default="native",
        help="native: connect to the first car found; chooser: pick from a list",
    )
    parser.add_argument("--name", help="Only connect to a device advertising this name")
    parser.add_argument("--adapter", help="Host Bluetooth controller (e.g. hci0)")
    parser.add_argument(
        "--connect-timeout", type=float, default=CONNECT_TIMEOUT, help="GATT connect timeout (s)"
    )
    parser.add_argument(
        "--scan-timeout", type=float, default=SCAN_TIMEOUT, help="Scan timeout (s)"
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command")

    monitor_parser = subparsers.add_parser("monitor", help="Connect and print state and telemetry")
    monitor_parser.add_argument(
        "--duration", type=float, default=None, help="Stop after this many seconds (default: until Ctrl-C)"
    )

    subparsers.add_parser("manual", help="Switch the car to manual mode")
    subparsers.add_parser("auto", help="Switch the car to autonomous mode")

    drive_parser = subparsers.add_parser("drive", help="Hold a joystick position, then release")
    drive_parser.add_argument("x", type=float, help="Horizontal axis, -1..1")
    drive_parser.add_argument("y", type=float, help="Vertical axis, -1..1")
    drive_parser.add_argument("--duration", type=float, default=1.0, help="Seconds to hold (default: 1)")

    return parser.parse_args(args)


async def console_chooser(candidates: Sequence[ScanResult]) -> ScanResult | None:
    """Let the user pick a device on stdin.  Empty input cancels."""
    if not candidates:
        print("No devices found.")
        return None
    for idx, device in enumerate(candidates, start=1):
        rssi = f"{device.rssi} dBm" if device.rssi is not None else "?"
        print(f"  [{idx}] {device.display_name} ({device.id}, {rssi})")

    loop = asyncio.get_running_loop()
    answer = await loop.run_in_executor(None, input, "Select device (blank to cancel): ")
    answer = answer.strip()
    if not answer:
        return None
    try:
        return candidates[int(answer) - 1]
    except (ValueError, IndexError):
        print(f"Invalid choice: {answer}")
        return None


def build_config(args: argparse.Namespace) -> LinkConfig:
    config = LinkConfig(
        connect_timeout=args.connect_timeout,
        scan_timeout=args.scan_timeout,
        device_name=args.name,
        adapter=args.adapter,
    )
    if args.transport == "chooser":
        # The chooser shows everything; the service list still scopes the session.
        config.scan_options = ScanOptions(accept_all=True)
    return config


def build_adapter(transport: str, config: LinkConfig) -> TransportAdapter:
    if transport == "chooser":
        return ChooserAdapter(console_chooser, config)
    return NativeAdapter(config)


class StatePrinter:
    """Observer printing status, error and telemetry changes."""

    def __init__(self) -> None:
        self._last: LinkState | None = None

    def __call__(self, state: LinkState) -> None:
        last = self._last
        self._last = state
        if last is None or state.status != last.status:
            print(f"Status: {state.status}")
        if state.error and (last is None or state.error != last.error):
            print(f"Error: {state.error}")
        if state.last_telemetry is not None and (
            last is None or state.last_telemetry != last.last_telemetry
        ):
            message = classify_telemetry(state.last_telemetry)
            mode = f" (mode {message.mode})" if message.mode else ""
            print(f"Telemetry [{message.kind}]{mode}: {message.raw}")


async def _monitor(duration: float | None) -> None:
    if duration is None:
        await asyncio.Event().wait()
    else:
        await asyncio.sleep(duration)


async def _drive(manager: LinkManager, x: float, y: float, duration: float) -> bool:
    stream = JoystickStream(manager, manager.config.joystick_interval)
    deadline = time.monotonic() + duration
    try:
        while time.monotonic() < deadline:
            await stream.move(x, y)
            await asyncio.sleep(manager.config.joystick_interval)
        return await stream.release()
    finally:
        stream.stop()


async def run(args: argparse.Namespace) -> int:
    config = build_config(args)
    adapter = build_adapter(args.transport, config)
    manager = LinkManager(adapter, config)
    printer = StatePrinter()
    manager.subscribe_observer(printer)

    await manager.connect()
    if not manager.state.is_subscribed:
        manager.unsubscribe_observer(printer)
        return 1

    ok = True
    try:
        if args.command == "monitor":
            await _monitor(args.duration)
        elif args.command == "manual":
            ok = await manager.send_manual_command()
        elif args.command == "auto":
            ok = await manager.send_auto_command()
        elif args.command == "drive":
            ok = await _drive(manager, args.x, args.y, args.duration)
    finally:
        await manager.disconnect()
        manager.unsubscribe_observer(printer)
    return 0 if ok else 1


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        _LOGGER.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
