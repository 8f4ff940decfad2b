from __future__ import annotations

import asyncio
import threading

import pytest

from parkingpermitsync.events import (
    DeviceConnected,
    Event,
    EventBus,
    PermitSynced,
    ServiceRunning,
)
from parkingpermitsync.models import Permit


def test_publish_reaches_all_subscribers() -> None:
    bus = EventBus()
    first: list[Event] = []
    second: list[Event] = []
    bus.subscribe(first.append)
    bus.subscribe(second.append)

    bus.publish(ServiceRunning())

    assert first == [ServiceRunning()]
    assert second == [ServiceRunning()]


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    received: list[Event] = []
    unsubscribe = bus.subscribe(received.append)

    unsubscribe()
    unsubscribe()
    bus.publish(ServiceRunning())

    assert received == []


def test_failing_subscriber_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    bus = EventBus()
    received: list[Event] = []

    def _boom(event: Event) -> None:
        raise RuntimeError("subscriber bug")

    bus.subscribe(_boom)
    bus.subscribe(received.append)

    bus.publish(DeviceConnected("dev"))

    assert received == [DeviceConnected("dev")]
    assert "subscriber failed" in caplog.text


@pytest.mark.asyncio
async def test_stream_delivers_events_from_other_threads() -> None:
    bus = EventBus()
    stream = bus.stream()
    first = asyncio.ensure_future(anext(stream))
    await asyncio.sleep(0)

    event = PermitSynced(permit=Permit(permit_number="T1"), is_new=True)
    thread = threading.Thread(target=bus.publish, args=(event,))
    thread.start()
    thread.join()

    assert await asyncio.wait_for(first, timeout=1.0) == event
    await stream.aclose()
    bus.publish(ServiceRunning())
