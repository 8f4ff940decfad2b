"""Persistent permit state.

``PermitStore`` is a typed repository over a small key/value backend. Every
read or write touches the backend under its lock, so each call is atomic on
its own; callers never hold a transaction across calls. Concurrent writers
to the display tier (the GATT read handler and a confirmed display push)
therefore resolve as last writer wins.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from .const import DEFAULT_REMOTE_URL, SEED_PREVIOUS_PERMIT
from .exceptions import StoreError, ValidationError
from .models import Permit, StoreSnapshot

_LOGGER = logging.getLogger(__name__)

KEY_REMOTE_PERMIT = "remote_permit"
KEY_DISPLAY_PERMIT = "display_permit"
KEY_DISPLAY_PERMIT_NUMBER = "display_permit_number"
KEY_LAST_DISPLAY_SYNC = "last_display_sync_time"
KEY_PREVIOUS_PERMIT = "previous_permit"
KEY_LAST_SYNC = "last_sync_time"
KEY_REMOTE_URL = "remote_url"
KEY_DISPLAY_FLIPPED = "display_flipped"


class StoreBackend(ABC):
    """Key/value persistence used by ``PermitStore``."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for ``key``."""

    @abstractmethod
    def set_many(self, values: Mapping[str, Any]) -> None:
        """Write all ``values`` in a single mutation."""

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    @abstractmethod
    def contains(self, key: str) -> bool:
        """Return True when ``key`` has been written."""


class MemoryBackend(StoreBackend):
    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set_many(self, values: Mapping[str, Any]) -> None:
        with self._lock:
            self._data.update(values)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._data


class JsonFileBackend(StoreBackend):
    """Single JSON document on disk, rewritten atomically on every change."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._data = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StoreError(f"Store file {self._path} could not be read.") from exc
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            _LOGGER.warning("Store file %s is not valid JSON; starting empty", self._path)
            return {}
        if not isinstance(data, dict):
            _LOGGER.warning("Store file %s is not a JSON object; starting empty", self._path)
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise StoreError(f"Store file {self._path} could not be written.") from exc

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set_many(self, values: Mapping[str, Any]) -> None:
        with self._lock:
            updated = {**self._data, **values}
            self._write(updated)
            self._data = updated

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._data


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


class PermitStore:
    """Typed access to the remote, display and previous permit tiers."""

    def __init__(
        self,
        backend: StoreBackend | None = None,
        *,
        clock: Callable[[], float] = time.time,
        seed_previous: bool = True,
    ) -> None:
        self._backend = backend if backend is not None else MemoryBackend()
        self._clock = clock
        if seed_previous and not self._backend.contains(KEY_PREVIOUS_PERMIT):
            _LOGGER.debug("Seeding previous permit with historical record")
            self._backend.set(KEY_PREVIOUS_PERMIT, dict(SEED_PREVIOUS_PERMIT))

    @classmethod
    def open(cls, path: str | os.PathLike[str], **kwargs: Any) -> PermitStore:
        return cls(JsonFileBackend(path), **kwargs)

    def now_ms(self) -> int:
        return _now_ms(self._clock)

    def _read_permit(self, key: str) -> Permit | None:
        raw = self._backend.get(key)
        if raw is None:
            return None
        try:
            return Permit.from_dict(raw)
        except ValidationError:
            _LOGGER.warning("Stored %s is unreadable; treating it as absent", key)
            return None

    def get_remote_permit(self) -> Permit | None:
        return self._read_permit(KEY_REMOTE_PERMIT)

    def set_remote_permit(self, permit: Permit) -> None:
        self._backend.set(KEY_REMOTE_PERMIT, permit.to_dict())

    def save_remote_permit(self, permit: Permit, previous: Permit | None = None) -> None:
        """Store a freshly fetched permit and stamp the sync time.

        ``previous`` is written alongside when the fetched permit replaces a
        different one.
        """
        values: dict[str, Any] = {
            KEY_REMOTE_PERMIT: permit.to_dict(),
            KEY_LAST_SYNC: self.now_ms(),
        }
        if previous is not None:
            values[KEY_PREVIOUS_PERMIT] = previous.to_dict()
        self._backend.set_many(values)

    def get_display_permit(self) -> Permit | None:
        return self._read_permit(KEY_DISPLAY_PERMIT)

    def set_display_permit(self, permit: Permit) -> None:
        self._backend.set_many(
            {
                KEY_DISPLAY_PERMIT: permit.to_dict(),
                KEY_DISPLAY_PERMIT_NUMBER: permit.permit_number,
                KEY_LAST_DISPLAY_SYNC: self.now_ms(),
            }
        )

    def get_display_permit_number(self) -> str | None:
        value = self._backend.get(KEY_DISPLAY_PERMIT_NUMBER)
        if not isinstance(value, str) or not value:
            return None
        return value

    def get_last_display_sync_time(self) -> int:
        return int(self._backend.get(KEY_LAST_DISPLAY_SYNC, 0) or 0)

    def get_previous_permit(self) -> Permit | None:
        return self._read_permit(KEY_PREVIOUS_PERMIT)

    def set_previous_permit(self, permit: Permit | None) -> None:
        self._backend.set(KEY_PREVIOUS_PERMIT, permit.to_dict() if permit else None)

    def get_last_sync_time(self) -> int:
        return int(self._backend.get(KEY_LAST_SYNC, 0) or 0)

    def set_last_sync_time(self, timestamp_ms: int) -> None:
        self._backend.set(KEY_LAST_SYNC, int(timestamp_ms))

    def get_remote_url(self) -> str:
        value = self._backend.get(KEY_REMOTE_URL)
        if not isinstance(value, str) or not value.strip():
            return DEFAULT_REMOTE_URL
        return value

    def set_remote_url(self, url: str | None) -> None:
        if url is not None:
            if not isinstance(url, str) or not url.strip():
                raise ValidationError("Remote URL must be a non-empty string.")
            if not url.startswith(("http://", "https://")):
                raise ValidationError("Remote URL must use http or https.")
            url = url.strip()
        self._backend.set(KEY_REMOTE_URL, url)

    def get_display_flipped(self) -> bool:
        return self._backend.get(KEY_DISPLAY_FLIPPED, False) is True

    def set_display_flipped(self, flipped: bool) -> None:
        self._backend.set(KEY_DISPLAY_FLIPPED, bool(flipped))

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            remote_permit=self.get_remote_permit(),
            display_permit=self.get_display_permit(),
            display_permit_number=self.get_display_permit_number(),
            previous_permit=self.get_previous_permit(),
            last_sync_time=self.get_last_sync_time(),
            last_display_sync_time=self.get_last_display_sync_time(),
        )

    def is_display_out_of_sync(self) -> bool:
        remote = self.get_remote_permit()
        if remote is None or not remote.is_valid():
            return False
        display_number = self.get_display_permit_number()
        return display_number is None or display_number != remote.permit_number
