"""Manual live check against the real permit source and display.

Run from the repository root with:
  PYTHONPATH=src python scripts/live_check.py

Optional environment variables:
  PERMIT_SYNC_URL       permit JSON URL (defaults to the built-in one)
  LIVE_CHECK_SCAN=1     also scan for the display and send SYNC
  LIVE_CHECK_FORCE=1    send FORCE instead of SYNC

The remote check uses an in-memory store, so nothing on disk is touched.
The script avoids printing full license plates.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys

from parkingpermitsync import PermitSyncClient, PermitStore
from parkingpermitsync.exceptions import ParkingPermitSyncError
from parkingpermitsync.models import Permit
from parkingpermitsync.reconcile import format_date_range
from parkingpermitsync.util import mask_license_plate


def _format_permit(permit: Permit) -> str:
    return (
        f"{permit.permit_number} | {mask_license_plate(permit.plate_number)} | "
        f"{format_date_range(permit.valid_from, permit.valid_to)} | "
        f"{permit.price or '-'} | complete={permit.is_complete()}"
    )


def _enabled(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes"}


async def main() -> int:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    async with PermitSyncClient(
        PermitStore(seed_previous=False),
        remote_url=os.getenv("PERMIT_SYNC_URL"),
    ) as client:
        try:
            result = await client.sync()
        except ParkingPermitSyncError as exc:
            print(f"Remote sync failed: {exc.__class__.__name__}: {exc}", file=sys.stderr)
            return 1
        print(f"Permit: {_format_permit(result.permit)}")

        if not _enabled("LIVE_CHECK_SCAN"):
            return 0
        try:
            await client.push_display(force=_enabled("LIVE_CHECK_FORCE"), on_status=print)
        except ParkingPermitSyncError as exc:
            print(f"Display push failed: {exc.__class__.__name__}: {exc}", file=sys.stderr)
            return 1
        print("Display command sent.")
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
