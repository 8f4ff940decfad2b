"""Typed events and the publish/subscribe bus that carries them.

The GATT server, the scheduler and the client publish here; anything that
renders state (CLI, a UI, a notifier) subscribes. Publishing may happen from
the BlueZ main-loop thread, so async consumers go through ``stream()``, which
hands events to their loop with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

from .models import Permit

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ServiceRunning:
    pass


@dataclass(frozen=True, slots=True)
class DeviceConnected:
    device: str


@dataclass(frozen=True, slots=True)
class DeviceDisconnected:
    device: str


@dataclass(frozen=True, slots=True)
class PermitRead:
    is_new: bool
    permit: Permit
    previous: Permit | None = None


@dataclass(frozen=True, slots=True)
class PermitSynced:
    permit: Permit
    is_new: bool


Event = ServiceRunning | DeviceConnected | DeviceDisconnected | PermitRead | PermitSynced
Subscriber = Callable[[Event], None]


class EventBus:
    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` and return a function that removes it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, event: Event) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        _LOGGER.debug("Publishing %s to %d subscribers", type(event).__name__, len(subscribers))
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                _LOGGER.exception("Event subscriber failed for %s", type(event).__name__)

    async def stream(self) -> AsyncIterator[Event]:
        """Yield published events on the current event loop until cancelled."""
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Event] = asyncio.Queue()

        def _forward(event: Event) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, event)

        unsubscribe = self.subscribe(_forward)
        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()
