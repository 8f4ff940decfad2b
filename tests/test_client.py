from __future__ import annotations

import json
from datetime import datetime
from typing import Any

import aiohttp
import pytest

from parkingpermitsync import PermitSyncClient
from parkingpermitsync.events import Event, PermitRead, PermitSynced
from parkingpermitsync.exceptions import DisplayNotFoundError
from parkingpermitsync.models import Permit, PermitBadge
from parkingpermitsync.store import PermitStore


class _FakeResponse:
    def __init__(self, payload: Any, *, status: int = 200) -> None:
        self.status = status
        self._payload = payload

    async def text(self) -> str:
        return json.dumps(self._payload)


class _FakeRequestContext:
    def __init__(self, response: _FakeResponse) -> None:
        self._response = response

    async def __aenter__(self) -> _FakeResponse:
        return self._response

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _StaticSession:
    def __init__(self, payload: Any) -> None:
        self._payload = payload
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeRequestContext:
        return _FakeRequestContext(_FakeResponse(self._payload))

    async def close(self) -> None:
        self.closed = True


class _FakePushClient:
    instances: list[_FakePushClient] = []

    def __init__(self, *, error: Exception | None = None, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.error = error
        self.forced: bool | None = None
        _FakePushClient.instances.append(self)

    async def push(self, force: bool = False) -> None:
        self.forced = force
        if self.error is not None:
            raise self.error


def _payload(number: str = "T1") -> dict[str, str]:
    return {
        "permitNumber": number,
        "plateNumber": "ABC123",
        "validFrom": "Jan 04, 2026: 00:00",
        "validTo": "Jan 10, 2026: 23:59",
        "barcodeValue": "1",
        "barcodeLabel": number,
        "amountPaid": "$48.00",
    }


@pytest.mark.asyncio
async def test_client_does_not_close_injected_session() -> None:
    session = aiohttp.ClientSession()
    client = PermitSyncClient(session=session)
    await client.aclose()

    assert session.closed is False
    await session.close()


@pytest.mark.asyncio
async def test_sync_publishes_event() -> None:
    client = PermitSyncClient(session=_StaticSession(_payload()))  # type: ignore[arg-type]
    received: list[Event] = []
    client.events.subscribe(received.append)

    result = await client.sync()

    assert result.is_new is True
    assert received == [PermitSynced(permit=result.permit, is_new=True)]


@pytest.mark.asyncio
async def test_push_display_marks_display_synced() -> None:
    _FakePushClient.instances.clear()
    store = PermitStore()
    store.save_remote_permit(Permit.from_dict(_payload()))
    client = PermitSyncClient(store, push_client_factory=_FakePushClient, scan_timeout=2.0)
    statuses: list[str] = []

    await client.push_display(force=True, on_status=statuses.append)

    push = _FakePushClient.instances[-1]
    assert push.forced is True
    assert push.kwargs["scan_timeout"] == 2.0
    assert store.get_display_permit_number() == "T1"
    assert not store.is_display_out_of_sync()


@pytest.mark.asyncio
async def test_push_display_failure_leaves_store_untouched() -> None:
    store = PermitStore()
    store.save_remote_permit(Permit.from_dict(_payload()))

    def _factory(**kwargs: Any) -> _FakePushClient:
        return _FakePushClient(error=DisplayNotFoundError("Display not found."), **kwargs)

    client = PermitSyncClient(store, push_client_factory=_factory)

    with pytest.raises(DisplayNotFoundError):
        await client.push_display()

    assert store.get_display_permit_number() is None
    assert store.is_display_out_of_sync()


def test_status_reports_tiers_and_badge() -> None:
    store = PermitStore(clock=lambda: 1_700_000_060.0)
    store.save_remote_permit(Permit.from_dict(_payload("T2")))
    store.set_display_permit(Permit.from_dict(_payload("T1")))
    store.save_remote_permit(Permit.from_dict(_payload("T2")))
    client = PermitSyncClient(store, now=lambda: datetime(2026, 1, 10, 9, 0))

    status = client.status()

    assert status.current is not None
    assert status.current.permit_number == "T1"
    assert status.scheduled is not None
    assert status.scheduled.permit.permit_number == "T2"
    assert status.badge is PermitBadge.EXPIRING_TODAY
    assert status.out_of_sync is True
    assert status.last_sync == "Just now"


def test_status_without_permit() -> None:
    status = PermitSyncClient(PermitStore()).status()

    assert status.current is None
    assert status.badge is None
    assert status.scheduled is None
    assert status.last_sync == "Never"


def test_gatt_server_is_shared_and_uses_client_events() -> None:
    store = PermitStore()
    store.set_display_permit(Permit.from_dict(_payload("T1")))
    store.save_remote_permit(Permit.from_dict(_payload("T2")))
    client = PermitSyncClient(store)
    received: list[Event] = []
    client.events.subscribe(received.append)

    server = client.gatt_server()
    assert client.gatt_server() is server
    server.on_read("0000ff01-0000-1000-8000-00805f9b34fb", 0)

    assert [type(event) for event in received] == [PermitRead]
