"""Command line entry point.

Examples:
  parkingpermitsync sync
  parkingpermitsync status
  parkingpermitsync push --force
  PERMIT_SYNC_URL=https://example/permit.json parkingpermitsync serve
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import traceback
from collections.abc import Sequence

import aiohttp

from .client import PermitSyncClient
from .config import Settings
from .events import (
    DeviceConnected,
    DeviceDisconnected,
    Event,
    PermitRead,
    PermitSynced,
    ServiceRunning,
)
from .exceptions import ParkingPermitSyncError
from .models import Permit, PermitStatus
from .reconcile import format_date_range, price_change_message
from .scheduler import DailySyncScheduler
from .store import PermitStore
from .util import mask_license_plate

_LOGGER = logging.getLogger(__name__)
_ANSI_STYLES = {
    "reset": "\x1b[0m",
    "bold": "\x1b[1m",
    "red": "\x1b[31m",
    "green": "\x1b[32m",
    "yellow": "\x1b[33m",
    "cyan": "\x1b[36m",
}
_COLOR_ENABLED = False


def _style(text: str, color: str | None = None, *, bold: bool = False) -> str:
    if not _COLOR_ENABLED or not color:
        return text
    color_code = _ANSI_STYLES.get(color)
    if not color_code:
        return text
    prefix = _ANSI_STYLES["bold"] if bold else ""
    return f"{prefix}{color_code}{text}{_ANSI_STYLES['reset']}"


def _format_action(label: str, value: str, *, color: str | None = None) -> str:
    return f"{_style(label, color, bold=True)}: {value}"


def _print_exception(label: str, exc: Exception, *, trace: bool) -> None:
    styled_label = _style(label, "red", bold=True)
    print(f"{styled_label}: {exc.__class__.__name__}: {exc}", file=sys.stderr)
    if trace:
        traceback.print_exc()


def _format_permit(permit: Permit, *, sanitize: bool) -> str:
    plate = mask_license_plate(permit.plate_number) if sanitize else permit.plate_number
    parts = [
        permit.permit_number,
        plate or "-",
        format_date_range(permit.valid_from, permit.valid_to),
    ]
    if permit.vehicle_name:
        parts.append(permit.vehicle_name)
    if permit.price:
        parts.append(permit.price)
    return " | ".join(parts)


def _format_event(event: Event, *, sanitize: bool) -> str:
    if isinstance(event, ServiceRunning):
        return "Permit service running"
    if isinstance(event, DeviceConnected):
        return f"Display connected ({event.device})"
    if isinstance(event, DeviceDisconnected):
        return f"Display disconnected ({event.device})"
    if isinstance(event, PermitRead):
        line = f"Display read permit {_format_permit(event.permit, sanitize=sanitize)}"
        if event.is_new:
            line += " (new)"
            message = price_change_message(event.previous, event.permit)
            if message:
                line += f"; {message}"
        return line
    if isinstance(event, PermitSynced):
        status = "new permit" if event.is_new else "unchanged"
        return f"Remote sync: {event.permit.permit_number} ({status})"
    return type(event).__name__


def _print_status(status: PermitStatus, *, sanitize: bool) -> None:
    if status.current is None:
        print(_format_action("Current", "No permit synced yet", color="yellow"))
    else:
        badge = status.badge.value if status.badge is not None else "-"
        print(
            _format_action(
                "Current",
                f"{_format_permit(status.current, sanitize=sanitize)} [{badge}]",
                color="cyan",
            )
        )
    if status.scheduled is not None:
        label = "Scheduled (estimated)" if status.scheduled.estimated else "Scheduled"
        print(
            _format_action(
                label, _format_permit(status.scheduled.permit, sanitize=sanitize), color="cyan"
            )
        )
    if status.out_of_sync:
        print(_format_action("Display", "Out of sync", color="yellow"))
    else:
        print(_format_action("Display", "In sync", color="green"))
    print(_format_action("Last sync", status.last_sync))
    print(_format_action("Last display sync", status.last_display_sync))


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="parkingpermitsync",
        description="Sync a parking permit to an e-paper display.",
    )
    parser.add_argument("--store", dest="store_path", help="Path of the JSON permit store.")
    parser.add_argument("--url", dest="remote_url", help="Permit JSON URL for this run.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "--sanitize-output",
        action="store_true",
        help="Mask license plates in output.",
    )
    parser.add_argument(
        "--traceback",
        action="store_true",
        help="Print full tracebacks on errors.",
    )
    parser.add_argument(
        "--color",
        choices=("auto", "always", "never"),
        default="auto",
        help="Colorize output.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("sync", help="Fetch the permit from the remote URL.")
    subparsers.add_parser("status", help="Show current and scheduled permits.")
    push_parser = subparsers.add_parser("push", help="Command the display to refresh.")
    push_parser.add_argument(
        "--force",
        action="store_true",
        help="Send FORCE so the display redraws even if unchanged.",
    )
    serve_parser = subparsers.add_parser(
        "serve",
        help="Serve the permit over BLE and sync daily.",
    )
    serve_parser.add_argument(
        "--no-sync-on-start",
        dest="sync_on_start",
        action="store_false",
        help="Wait for the daily trigger before the first sync.",
    )
    url_parser = subparsers.add_parser("set-url", help="Store the permit JSON URL.")
    url_parser.add_argument("url", nargs="?", help="New URL; omit to restore the default.")
    flip_parser = subparsers.add_parser("flip", help="Set display orientation.")
    flip_parser.add_argument("value", choices=("on", "off"))
    return parser.parse_args(argv)


async def _cmd_sync(client: PermitSyncClient, args: argparse.Namespace) -> int:
    previous = client.store.get_remote_permit()
    result = await client.sync()
    status = "new permit" if result.is_new else "unchanged"
    print(
        _format_action(
            "Synced",
            f"{_format_permit(result.permit, sanitize=args.sanitize_output)} ({status})",
            color="green",
        )
    )
    if result.is_new:
        message = price_change_message(previous, result.permit)
        if message:
            print(_format_action("Price", message))
    return 0


async def _cmd_push(client: PermitSyncClient, args: argparse.Namespace) -> int:
    await client.push_display(force=args.force, on_status=print)
    print(_format_action("Display", "Command sent", color="green"))
    return 0


async def _print_events(client: PermitSyncClient, *, sanitize: bool) -> None:
    async for event in client.events.stream():
        print(_format_action("Event", _format_event(event, sanitize=sanitize), color="cyan"))


async def _cmd_serve(
    client: PermitSyncClient,
    settings: Settings,
    args: argparse.Namespace,
) -> int:
    # Imported here so the other commands work without the bluez extra.
    from .bluez import BluezPeripheral

    peripheral = BluezPeripheral(
        client.gatt_server(),
        adapter=settings.adapter,
        device_name=settings.device_name,
    )
    scheduler = DailySyncScheduler(client.syncer(), client.events, hour=settings.sync_hour)
    _LOGGER.info("Serving permit as %s on %s", settings.device_name, settings.adapter)
    printer = asyncio.create_task(_print_events(client, sanitize=args.sanitize_output))
    sync_task = asyncio.create_task(scheduler.run(sync_on_start=args.sync_on_start))
    try:
        await asyncio.to_thread(peripheral.run)
    finally:
        peripheral.stop()
        for task in (sync_task, printer):
            task.cancel()
        await asyncio.gather(sync_task, printer, return_exceptions=True)
    return 0


async def _run(args: argparse.Namespace) -> int:
    settings = Settings.from_env(store_path=args.store_path, remote_url=args.remote_url)
    store = PermitStore.open(settings.store_path)

    if args.command == "set-url":
        store.set_remote_url(args.url)
        print(_format_action("Remote URL", store.get_remote_url()))
        return 0
    if args.command == "flip":
        store.set_display_flipped(args.value == "on")
        print(_format_action("Display flipped", args.value))
        return 0

    timeout = aiohttp.ClientTimeout(total=settings.http_timeout)
    async with PermitSyncClient(
        store,
        timeout=timeout,
        scan_timeout=settings.scan_timeout,
        remote_url=settings.remote_url,
    ) as client:
        if args.command == "sync":
            return await _cmd_sync(client, args)
        if args.command == "push":
            return await _cmd_push(client, args)
        if args.command == "serve":
            return await _cmd_serve(client, settings, args)
        _print_status(client.status(), sanitize=args.sanitize_output)
        return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    global _COLOR_ENABLED
    if args.color == "always":
        _COLOR_ENABLED = True
    elif args.color == "never":
        _COLOR_ENABLED = False
    else:
        _COLOR_ENABLED = sys.stdout.isatty()
    try:
        return asyncio.run(_run(args))
    except ParkingPermitSyncError as exc:
        _print_exception("Error", exc, trace=args.traceback)
        return 1
    except KeyboardInterrupt:
        return 130
