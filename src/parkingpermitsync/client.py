"""Client facade tying the store, remote sync and display push together."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import aiohttp

from .events import EventBus, PermitSynced
from .gatt_server import GattPermitServer
from .models import PermitStatus, SyncResult
from .push import DisplayPushClient
from .reconcile import current_permit, permit_badge, scheduled_permit
from .store import PermitStore
from .sync import RemoteSyncer
from .util import relative_time

_LOGGER = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=30)


class PermitSyncClient:
    """Facade for syncing the permit and keeping the display current."""

    def __init__(
        self,
        store: PermitStore | None = None,
        session: aiohttp.ClientSession | None = None,
        *,
        events: EventBus | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
        push_client_factory: Callable[..., DisplayPushClient] = DisplayPushClient,
        scan_timeout: float | None = None,
        remote_url: str | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store if store is not None else PermitStore()
        self._session = session
        self._owns_session = session is None
        self._events = events if events is not None else EventBus()
        self._timeout = timeout or _DEFAULT_TIMEOUT
        self._push_client_factory = push_client_factory
        self._scan_timeout = scan_timeout
        self._remote_url = remote_url
        self._now = now
        self._gatt_server: GattPermitServer | None = None

    async def __aenter__(self) -> PermitSyncClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def store(self) -> PermitStore:
        return self._store

    @property
    def events(self) -> EventBus:
        return self._events

    def syncer(self) -> RemoteSyncer:
        return RemoteSyncer(
            self._ensure_session(),
            self._store,
            timeout=self._timeout,
            url=self._remote_url,
        )

    def gatt_server(self) -> GattPermitServer:
        if self._gatt_server is None:
            self._gatt_server = GattPermitServer(self._store, self._events)
        return self._gatt_server

    async def sync(self) -> SyncResult:
        result = await self.syncer().sync()
        self._events.publish(PermitSynced(permit=result.permit, is_new=result.is_new))
        return result

    async def push_display(
        self,
        force: bool = False,
        *,
        on_status: Callable[[str], None] | None = None,
    ) -> None:
        """Command the display to refresh and record the permit it now shows."""
        kwargs: dict[str, Any] = {"on_status": on_status}
        if self._scan_timeout is not None:
            kwargs["scan_timeout"] = self._scan_timeout
        push_client = self._push_client_factory(**kwargs)
        await push_client.push(force=force)
        remote = self._store.get_remote_permit()
        if remote is not None and remote.is_valid():
            self._store.set_display_permit(remote)
            _LOGGER.debug("Display marked synced with permit %s", remote.permit_number)

    def status(self) -> PermitStatus:
        snapshot = self._store.snapshot()
        now = self._now()
        current = current_permit(snapshot)
        valid = current is not None and current.is_valid()
        now_ms = self._store.now_ms()
        return PermitStatus(
            current=current if valid else None,
            scheduled=scheduled_permit(snapshot, now),
            badge=permit_badge(current, now) if valid else None,
            out_of_sync=snapshot.is_display_out_of_sync(),
            last_sync=relative_time(snapshot.last_sync_time, now_ms),
            last_display_sync=relative_time(snapshot.last_display_sync_time, now_ms),
        )

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session
