"""Daily remote sync trigger."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from .const import DEFAULT_SYNC_HOUR
from .events import EventBus, PermitSynced
from .exceptions import ParkingPermitSyncError
from .sync import RemoteSyncer

_LOGGER = logging.getLogger(__name__)


def next_sync_time(now: datetime, hour: int = DEFAULT_SYNC_HOUR) -> datetime:
    """Return the next ``hour``:00 strictly after ``now``."""
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class DailySyncScheduler:
    """Run ``RemoteSyncer.sync`` once a day.

    A failed sync is logged and waits for the next trigger.
    """

    def __init__(
        self,
        syncer: RemoteSyncer,
        events: EventBus,
        *,
        hour: int = DEFAULT_SYNC_HOUR,
        now: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], object] = asyncio.sleep,
    ) -> None:
        self._syncer = syncer
        self._events = events
        self._hour = hour
        self._now = now
        self._sleep = sleep

    async def run_once(self) -> bool:
        try:
            result = await self._syncer.sync()
        except ParkingPermitSyncError as exc:
            _LOGGER.warning("Scheduled sync failed: %s", exc)
            return False
        _LOGGER.info(
            "Scheduled sync: permit %s (new=%s)", result.permit.permit_number, result.is_new
        )
        self._events.publish(PermitSynced(permit=result.permit, is_new=result.is_new))
        return True

    async def run(self, *, sync_on_start: bool = True) -> None:
        if sync_on_start:
            await self.run_once()
        while True:
            now = self._now()
            trigger = next_sync_time(now, self._hour)
            _LOGGER.debug("Next sync scheduled for %s", trigger.isoformat())
            await self._sleep((trigger - now).total_seconds())
            await self.run_once()
