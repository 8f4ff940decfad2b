"""GATT peripheral logic for serving the permit to the display.

``GattPermitServer`` knows nothing about the Bluetooth stack. A transport
binding (see ``bluez.py``) forwards connection changes and characteristic
requests to it and sends back the returned ``GattResponse``.

Protocol, as seen by the display:

1. connect (pending sync type resets to AUTO)
2. optionally write one byte to the sync-type characteristic
   (1=AUTO, 2=MANUAL, 3=FORCE)
3. read the permit characteristic, starting at offset 0 and continuing with
   increasing offsets until a short or empty chunk arrives

The read at offset 0 opens a transaction: the display tier is committed and
the notification decision is made there, once. Later offsets of the same
transaction are served from the payload captured at offset 0.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass
from enum import Enum, IntEnum

from .const import MAX_CHUNK_SIZE, PERMIT_CHAR_UUID, SYNC_TYPE_CHAR_UUID
from .events import DeviceConnected, DeviceDisconnected, EventBus, PermitRead, ServiceRunning
from .exceptions import StoreError, ValidationError
from .models import Permit, SyncType
from .store import PermitStore

_LOGGER = logging.getLogger(__name__)

_EMPTY_PAYLOAD = b"{}"


class GattStatus(IntEnum):
    """ATT status codes returned to the peer."""

    SUCCESS = 0x00
    READ_NOT_PERMITTED = 0x02
    WRITE_NOT_PERMITTED = 0x03
    INVALID_OFFSET = 0x07
    INVALID_ATTRIBUTE_LENGTH = 0x0D
    UNLIKELY_ERROR = 0x0E
    VALUE_NOT_ALLOWED = 0x13


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    TRANSACTION_PENDING = "transaction_pending"


@dataclass(frozen=True, slots=True)
class GattResponse:
    status: GattStatus
    value: bytes = b""

    @property
    def ok(self) -> bool:
        return self.status is GattStatus.SUCCESS


def chunk_payload(payload: bytes, offset: int, chunk_size: int = MAX_CHUNK_SIZE) -> bytes:
    """Return the slice of ``payload`` served for a read at ``offset``.

    Offsets at or past the end yield an empty chunk rather than an error.
    """
    if offset < 0:
        raise ValidationError("Offset must not be negative.")
    if offset >= len(payload):
        return b""
    return payload[offset : offset + min(len(payload) - offset, chunk_size)]


class GattPermitServer:
    """Session state machine for the permit and sync-type characteristics."""

    def __init__(
        self,
        store: PermitStore,
        events: EventBus | None = None,
        *,
        chunk_size: int = MAX_CHUNK_SIZE,
    ) -> None:
        self._store = store
        self._events = events if events is not None else EventBus()
        self._chunk_size = chunk_size
        self._lock = threading.RLock()
        self._state = SessionState.DISCONNECTED
        self._device: str | None = None
        self._pending_sync_type = SyncType.AUTO
        self._payload: bytes | None = None
        self._running = False
        self._closed = False

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pending_sync_type(self) -> SyncType:
        return self._pending_sync_type

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._closed:
                raise ValidationError("Server has been stopped.")
            if self._running:
                return
            self._running = True
        _LOGGER.info("Permit GATT server running")
        self._events.publish(ServiceRunning())

    def stop(self) -> bool:
        """Stop serving; returns False when the server was already stopped."""
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            self._running = False
            self._state = SessionState.DISCONNECTED
            self._device = None
            self._payload = None
        _LOGGER.info("Permit GATT server stopped")
        return True

    def on_connect(self, device: str) -> None:
        with self._lock:
            if self._device is not None and self._device != device:
                _LOGGER.warning("Device %s connected while %s is active", device, self._device)
            self._device = device
            self._state = SessionState.CONNECTED
            self._pending_sync_type = SyncType.AUTO
            self._payload = None
        _LOGGER.debug("Device connected: %s", device)
        self._events.publish(DeviceConnected(device=device))

    def on_disconnect(self, device: str) -> None:
        with self._lock:
            if self._device == device:
                self._device = None
                self._state = SessionState.DISCONNECTED
                self._payload = None
        _LOGGER.debug("Device disconnected: %s", device)
        self._events.publish(DeviceDisconnected(device=device))

    def on_write(
        self,
        char_uuid: str,
        value: bytes,
        *,
        response_needed: bool = True,
    ) -> GattResponse | None:
        """Handle a characteristic write; ``None`` means send no response."""
        if char_uuid.lower() != SYNC_TYPE_CHAR_UUID:
            _LOGGER.debug("Rejecting write to %s", char_uuid)
            return GattResponse(GattStatus.WRITE_NOT_PERMITTED)
        if len(value) != 1:
            return GattResponse(GattStatus.INVALID_ATTRIBUTE_LENGTH)
        try:
            sync_type = SyncType.from_byte(bytes(value))
        except ValidationError:
            _LOGGER.debug("Rejecting sync type byte %r", bytes(value))
            return GattResponse(GattStatus.VALUE_NOT_ALLOWED)
        with self._lock:
            self._pending_sync_type = sync_type
        _LOGGER.debug("Sync type set to %s", sync_type.name)
        if not response_needed:
            return None
        return GattResponse(GattStatus.SUCCESS)

    def on_read(self, char_uuid: str, offset: int = 0) -> GattResponse:
        if char_uuid.lower() != PERMIT_CHAR_UUID:
            _LOGGER.debug("Rejecting read of %s", char_uuid)
            return GattResponse(GattStatus.READ_NOT_PERMITTED)
        if offset < 0:
            return GattResponse(GattStatus.INVALID_OFFSET)
        with self._lock:
            if offset == 0:
                try:
                    self._payload = self._begin_transaction()
                except (StoreError, ValidationError):
                    _LOGGER.exception("Permit read transaction aborted")
                    self._payload = None
                    if self._state is SessionState.TRANSACTION_PENDING:
                        self._state = SessionState.CONNECTED
                    return GattResponse(GattStatus.UNLIKELY_ERROR)
            payload = self._payload
            if payload is None:
                # Continuation without an opening read (e.g. after reconnect).
                payload = self._serialize_current()
            chunk = chunk_payload(payload, offset, self._chunk_size)
            if offset + len(chunk) >= len(payload) and self._device is not None:
                self._state = SessionState.CONNECTED
        _LOGGER.debug("Permit read at offset %d, sending %d bytes", offset, len(chunk))
        return GattResponse(GattStatus.SUCCESS, chunk)

    def _encode(self, permit: Permit) -> bytes:
        flipped = self._store.get_display_flipped()
        return dataclasses.replace(permit, display_flipped=flipped).to_json().encode("utf-8")

    def _serialize_current(self) -> bytes:
        remote = self._store.get_remote_permit()
        if remote is None or not remote.is_valid():
            return _EMPTY_PAYLOAD
        return self._encode(remote)

    def _begin_transaction(self) -> bytes:
        sync_type = self._pending_sync_type
        try:
            if self._device is not None:
                self._state = SessionState.TRANSACTION_PENDING
            remote = self._store.get_remote_permit()
            if remote is None or not remote.is_valid():
                _LOGGER.debug("Permit read with no remote permit cached")
                return _EMPTY_PAYLOAD
            payload = self._encode(remote)

            display_number = self._store.get_display_permit_number()
            is_new = display_number is not None and display_number != remote.permit_number
            is_manual = sync_type.is_manual
            previous = self._store.get_display_permit()
            self._store.set_display_permit(remote)
            if not remote.is_complete():
                _LOGGER.warning("Serving incomplete permit %s", remote.permit_number)
            _LOGGER.debug(
                "Permit %s committed to display (sync=%s, new=%s)",
                remote.permit_number,
                sync_type.name,
                is_new,
            )
            if is_manual or is_new:
                self._events.publish(PermitRead(is_new=is_new, permit=remote, previous=previous))
            return payload
        finally:
            self._pending_sync_type = SyncType.AUTO
