"""BLE central that tells the display to re-read the permit."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from .const import (
    CMD_FORCE,
    CMD_SYNC,
    COMMAND_CHAR_UUID,
    CONNECT_TIMEOUT,
    DISPLAY_SERVICE_UUID,
    SCAN_TIMEOUT,
)
from .exceptions import (
    ConnectionFailedError,
    DisplayNotFoundError,
    PermissionDeniedError,
    ProtocolMismatchError,
    PushError,
    WriteFailedError,
)

_LOGGER = logging.getLogger(__name__)


class PushState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    DISCOVERING = "discovering"
    WRITING = "writing"
    DONE = "done"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TERMINAL_STATES = frozenset(
    {
        PushState.IDLE,
        PushState.DONE,
        PushState.TIMED_OUT,
        PushState.FAILED,
        PushState.CANCELLED,
    }
)


class DisplayPushClient:
    """Scan for the display, connect and write ``SYNC`` or ``FORCE``.

    One push runs at a time. Scan and connection resources are released
    exactly once whichever way the push ends, and ``cancel()`` may be called
    at any point (repeatedly) without error. No retries happen here.
    """

    def __init__(
        self,
        *,
        scan_timeout: float = SCAN_TIMEOUT,
        connect_timeout: float = CONNECT_TIMEOUT,
        scanner_factory: Callable[..., Any] = BleakScanner,
        client_factory: Callable[..., Any] = BleakClient,
        on_status: Callable[[str], None] | None = None,
    ) -> None:
        self._scan_timeout = scan_timeout
        self._connect_timeout = connect_timeout
        self._scanner_factory = scanner_factory
        self._client_factory = client_factory
        self._on_status = on_status
        self._state = PushState.IDLE
        self._scanner: Any | None = None
        self._scanning = False
        self._client: Any | None = None
        self._task: asyncio.Task[Any] | None = None

    @property
    def state(self) -> PushState:
        return self._state

    async def push(self, force: bool = False) -> None:
        if self._state not in _TERMINAL_STATES:
            raise PushError("A display push is already in progress.")
        command = CMD_FORCE if force else CMD_SYNC
        self._task = asyncio.current_task()
        _LOGGER.debug("Display push started (%s)", command.decode())
        try:
            device = await self._scan()
            client = await self._connect(device)
            characteristic = self._discover(client)
            await self._write(client, characteristic, command)
            self._state = PushState.DONE
            _LOGGER.debug("Display push completed")
        except PushError as exc:
            if self._state is not PushState.TIMED_OUT:
                self._state = PushState.FAILED
            _LOGGER.warning("Display push failed: %s", exc)
            raise
        except asyncio.CancelledError:
            self._state = PushState.CANCELLED
            _LOGGER.debug("Display push cancelled")
            raise
        except Exception as exc:
            self._state = PushState.FAILED
            _LOGGER.warning("Display push failed unexpectedly", exc_info=True)
            raise PushError(f"Display push failed: {exc.__class__.__name__}") from exc
        finally:
            self._task = None
            await self._release()

    async def cancel(self) -> None:
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        if self._state not in _TERMINAL_STATES:
            self._state = PushState.CANCELLED
        await self._release()

    def _status(self, message: str) -> None:
        _LOGGER.debug(message)
        if self._on_status is not None:
            self._on_status(message)

    async def _scan(self) -> BLEDevice:
        self._state = PushState.SCANNING
        self._status("Scanning for display...")
        found: asyncio.Future[BLEDevice] = asyncio.get_running_loop().create_future()

        def _detected(device: BLEDevice, advertisement: AdvertisementData) -> None:
            if found.done():
                return
            uuids = {uuid.lower() for uuid in advertisement.service_uuids or ()}
            if DISPLAY_SERVICE_UUID not in uuids:
                return
            found.set_result(device)

        try:
            self._scanner = self._scanner_factory(
                detection_callback=_detected,
                service_uuids=[DISPLAY_SERVICE_UUID],
            )
            await self._scanner.start()
        except PermissionError as exc:
            raise PermissionDeniedError("Bluetooth permission denied.") from exc
        except (BleakError, OSError) as exc:
            raise DisplayNotFoundError("Scan failed.") from exc
        self._scanning = True
        try:
            device = await asyncio.wait_for(found, timeout=self._scan_timeout)
        except TimeoutError as exc:
            self._state = PushState.TIMED_OUT
            raise DisplayNotFoundError("Display not found.") from exc
        finally:
            await self._stop_scan()
        _LOGGER.debug("Found display: %s", device.name or device.address)
        return device

    async def _connect(self, device: BLEDevice) -> Any:
        self._state = PushState.CONNECTING
        self._status("Connecting to display...")
        try:
            self._client = self._client_factory(device)
            await asyncio.wait_for(self._client.connect(), timeout=self._connect_timeout)
        except PermissionError as exc:
            raise PermissionDeniedError("Connection permission denied.") from exc
        except (BleakError, OSError, TimeoutError) as exc:
            raise ConnectionFailedError("Could not connect to display.") from exc
        self._state = PushState.DISCOVERING
        self._status("Connected, sending command...")
        return self._client

    def _discover(self, client: Any) -> BleakGATTCharacteristic:
        try:
            service = client.services.get_service(DISPLAY_SERVICE_UUID)
        except BleakError as exc:
            raise ProtocolMismatchError("Service discovery failed.") from exc
        if service is None:
            raise ProtocolMismatchError("Display service not found.")
        characteristic = service.get_characteristic(COMMAND_CHAR_UUID)
        if characteristic is None:
            raise ProtocolMismatchError("Command characteristic not found.")
        return characteristic

    async def _write(
        self,
        client: Any,
        characteristic: BleakGATTCharacteristic,
        command: bytes,
    ) -> None:
        self._state = PushState.WRITING
        _LOGGER.debug("Sending command: %s", command.decode())
        try:
            await client.write_gatt_char(characteristic, command, response=True)
        except PermissionError as exc:
            raise PermissionDeniedError("Write permission denied.") from exc
        except (BleakError, OSError, TimeoutError) as exc:
            raise WriteFailedError("Command failed.") from exc

    async def _stop_scan(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None or not self._scanning:
            return
        self._scanning = False
        try:
            await scanner.stop()
        except (BleakError, OSError, EOFError):
            _LOGGER.warning("Stopping the scan failed", exc_info=True)

    async def _release(self) -> None:
        await self._stop_scan()
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.disconnect()
        except (BleakError, OSError, EOFError):
            _LOGGER.warning("Disconnecting from display failed", exc_info=True)
