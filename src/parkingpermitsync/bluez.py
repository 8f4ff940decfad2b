"""BlueZ D-Bus binding for ``GattPermitServer``.

Registers a GATT application and an LE advertisement with BlueZ and forwards
characteristic requests and device connection changes to the server. Needs
the ``bluez`` extra (``dbus-python`` and ``PyGObject``) and runs a GLib main
loop, so ``BluezPeripheral.run()`` blocks; run it in a thread when the rest
of the process is asyncio.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import dbus
import dbus.exceptions
import dbus.mainloop.glib
import dbus.service
from gi.repository import GLib

from .const import (
    DEFAULT_ADAPTER,
    DEFAULT_DEVICE_NAME,
    PERMIT_CHAR_UUID,
    PERMIT_SERVICE_UUID,
    SYNC_TYPE_CHAR_UUID,
)
from .exceptions import PeripheralError
from .gatt_server import GattPermitServer, GattResponse, GattStatus

_LOGGER = logging.getLogger(__name__)

BLUEZ_SERVICE_NAME = "org.bluez"
ADAPTER_IFACE = "org.bluez.Adapter1"
DEVICE_IFACE = "org.bluez.Device1"
GATT_MANAGER_IFACE = "org.bluez.GattManager1"
GATT_SERVICE_IFACE = "org.bluez.GattService1"
GATT_CHRC_IFACE = "org.bluez.GattCharacteristic1"
LE_ADVERTISING_MANAGER_IFACE = "org.bluez.LEAdvertisingManager1"
LE_ADVERTISEMENT_IFACE = "org.bluez.LEAdvertisement1"
DBUS_OM_IFACE = "org.freedesktop.DBus.ObjectManager"
DBUS_PROP_IFACE = "org.freedesktop.DBus.Properties"

APP_PATH = "/org/parkingpermitsync"
ADVERTISEMENT_PATH = f"{APP_PATH}/advertisement0"


class InvalidArgsException(dbus.exceptions.DBusException):
    _dbus_error_name = "org.freedesktop.DBus.Error.InvalidArgs"


class FailedException(dbus.exceptions.DBusException):
    _dbus_error_name = "org.bluez.Error.Failed"


class NotPermittedException(dbus.exceptions.DBusException):
    _dbus_error_name = "org.bluez.Error.NotPermitted"


class InvalidOffsetException(dbus.exceptions.DBusException):
    _dbus_error_name = "org.bluez.Error.InvalidOffset"


class InvalidValueLengthException(dbus.exceptions.DBusException):
    _dbus_error_name = "org.bluez.Error.InvalidValueLength"


_STATUS_ERRORS: dict[GattStatus, type[dbus.exceptions.DBusException]] = {
    GattStatus.READ_NOT_PERMITTED: NotPermittedException,
    GattStatus.WRITE_NOT_PERMITTED: NotPermittedException,
    GattStatus.INVALID_OFFSET: InvalidOffsetException,
    GattStatus.INVALID_ATTRIBUTE_LENGTH: InvalidValueLengthException,
}


def _raise_for_status(response: GattResponse) -> None:
    if response.ok:
        return
    error_cls = _STATUS_ERRORS.get(response.status, FailedException)
    raise error_cls(f"ATT error 0x{int(response.status):02x}")


class Advertisement(dbus.service.Object):
    def __init__(self, bus: dbus.Bus, device_name: str) -> None:
        self.path = ADVERTISEMENT_PATH
        self.device_name = device_name
        dbus.service.Object.__init__(self, bus, self.path)

    def get_path(self) -> dbus.ObjectPath:
        return dbus.ObjectPath(self.path)

    def get_properties(self) -> dict[str, Any]:
        return {
            LE_ADVERTISEMENT_IFACE: {
                "Type": "peripheral",
                "LocalName": dbus.String(self.device_name),
                "ServiceUUIDs": dbus.Array([PERMIT_SERVICE_UUID], signature="s"),
            }
        }

    @dbus.service.method(DBUS_PROP_IFACE, in_signature="s", out_signature="a{sv}")
    def GetAll(self, interface):
        if interface != LE_ADVERTISEMENT_IFACE:
            raise InvalidArgsException(f"Unknown interface: {interface}")
        return self.get_properties()[LE_ADVERTISEMENT_IFACE]

    @dbus.service.method(LE_ADVERTISEMENT_IFACE, in_signature="", out_signature="")
    def Release(self):
        _LOGGER.debug("Advertisement released")


class Characteristic(dbus.service.Object):
    def __init__(
        self,
        bus: dbus.Bus,
        index: int,
        uuid: str,
        flags: list[str],
        service: PermitService,
    ) -> None:
        self.path = f"{service.path}/char{index}"
        self.uuid = uuid
        self.flags = flags
        self.service = service
        dbus.service.Object.__init__(self, bus, self.path)

    def get_path(self) -> dbus.ObjectPath:
        return dbus.ObjectPath(self.path)

    def get_properties(self) -> dict[str, Any]:
        return {
            GATT_CHRC_IFACE: {
                "Service": self.service.get_path(),
                "UUID": self.uuid,
                "Flags": dbus.Array(self.flags, signature="s"),
            }
        }

    @dbus.service.method(DBUS_PROP_IFACE, in_signature="s", out_signature="a{sv}")
    def GetAll(self, interface):
        if interface != GATT_CHRC_IFACE:
            raise InvalidArgsException(f"Unknown interface: {interface}")
        return self.get_properties()[GATT_CHRC_IFACE]

    @dbus.service.method(GATT_CHRC_IFACE, in_signature="a{sv}", out_signature="ay")
    def ReadValue(self, options):
        raise NotPermittedException("Read not supported")

    @dbus.service.method(GATT_CHRC_IFACE, in_signature="aya{sv}", out_signature="")
    def WriteValue(self, value, options):
        raise NotPermittedException("Write not supported")


class PermitCharacteristic(Characteristic):
    """Permit JSON, read in offset-addressed chunks."""

    def __init__(self, bus: dbus.Bus, index: int, service: PermitService) -> None:
        super().__init__(bus, index, PERMIT_CHAR_UUID, ["read"], service)

    @dbus.service.method(GATT_CHRC_IFACE, in_signature="a{sv}", out_signature="ay")
    def ReadValue(self, options):
        offset = int(options.get("offset", 0))
        response = self.service.server.on_read(self.uuid, offset)
        _raise_for_status(response)
        return dbus.Array(response.value, signature="y")


class SyncTypeCharacteristic(Characteristic):
    """One-byte sync type written before the permit read."""

    def __init__(self, bus: dbus.Bus, index: int, service: PermitService) -> None:
        super().__init__(
            bus,
            index,
            SYNC_TYPE_CHAR_UUID,
            ["write", "write-without-response"],
            service,
        )

    @dbus.service.method(GATT_CHRC_IFACE, in_signature="aya{sv}", out_signature="")
    def WriteValue(self, value, options):
        response_needed = str(options.get("type", "request")) != "command"
        response = self.service.server.on_write(
            self.uuid,
            bytes(value),
            response_needed=response_needed,
        )
        if response is not None:
            _raise_for_status(response)


class PermitService(dbus.service.Object):
    def __init__(self, bus: dbus.Bus, index: int, server: GattPermitServer) -> None:
        self.path = f"{APP_PATH}/service{index}"
        self.server = server
        dbus.service.Object.__init__(self, bus, self.path)
        self.characteristics = [
            PermitCharacteristic(bus, 0, self),
            SyncTypeCharacteristic(bus, 1, self),
        ]

    def get_path(self) -> dbus.ObjectPath:
        return dbus.ObjectPath(self.path)

    def get_properties(self) -> dict[str, Any]:
        return {
            GATT_SERVICE_IFACE: {
                "UUID": PERMIT_SERVICE_UUID,
                "Primary": True,
                "Characteristics": dbus.Array(
                    [char.get_path() for char in self.characteristics],
                    signature="o",
                ),
            }
        }

    @dbus.service.method(DBUS_PROP_IFACE, in_signature="s", out_signature="a{sv}")
    def GetAll(self, interface):
        if interface != GATT_SERVICE_IFACE:
            raise InvalidArgsException(f"Unknown interface: {interface}")
        return self.get_properties()[GATT_SERVICE_IFACE]


class Application(dbus.service.Object):
    def __init__(self, bus: dbus.Bus, server: GattPermitServer) -> None:
        self.path = APP_PATH
        dbus.service.Object.__init__(self, bus, self.path)
        self.service = PermitService(bus, 0, server)

    def get_path(self) -> dbus.ObjectPath:
        return dbus.ObjectPath(self.path)

    @dbus.service.method(DBUS_OM_IFACE, out_signature="a{oa{sa{sv}}}")
    def GetManagedObjects(self):
        response = {self.service.get_path(): self.service.get_properties()}
        for char in self.service.characteristics:
            response[char.get_path()] = char.get_properties()
        return response


class BluezPeripheral:
    """Advertise the permit service and serve it until stopped."""

    def __init__(
        self,
        server: GattPermitServer,
        *,
        adapter: str = DEFAULT_ADAPTER,
        device_name: str = DEFAULT_DEVICE_NAME,
    ) -> None:
        self._server = server
        self._adapter = adapter
        self._device_name = device_name
        self._bus: dbus.Bus | None = None
        self._adapter_path: str | None = None
        self._application: Application | None = None
        self._advertisement: Advertisement | None = None
        self._signal_match: Any | None = None
        self._mainloop: GLib.MainLoop | None = None
        self._lock = threading.Lock()
        self._closed = False

    def run(self) -> None:
        dbus.mainloop.glib.DBusGMainLoop(set_as_default=True)
        self._mainloop = GLib.MainLoop()
        try:
            self._setup()
            if not self._closed:
                self._mainloop.run()
        except dbus.exceptions.DBusException as exc:
            raise PeripheralError(f"BlueZ setup failed: {exc}") from exc
        finally:
            self.stop()

    def _setup(self) -> None:
        self._bus = dbus.SystemBus()
        self._adapter_path = self._find_adapter()
        self._power_on_adapter()
        self._application = Application(self._bus, self._server)
        self._advertisement = Advertisement(self._bus, self._device_name)
        self._signal_match = self._bus.add_signal_receiver(
            self._on_properties_changed,
            dbus_interface=DBUS_PROP_IFACE,
            signal_name="PropertiesChanged",
            arg0=DEVICE_IFACE,
            path_keyword="path",
        )
        self._manager(GATT_MANAGER_IFACE).RegisterApplication(
            self._application.get_path(),
            {},
            reply_handler=self._on_application_registered,
            error_handler=self._on_registration_error,
        )
        self._manager(LE_ADVERTISING_MANAGER_IFACE).RegisterAdvertisement(
            self._advertisement.get_path(),
            {},
            reply_handler=lambda: _LOGGER.info("Advertising as %s", self._device_name),
            error_handler=self._on_registration_error,
        )

    def stop(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._cleanup()
        if self._mainloop is not None and self._mainloop.is_running():
            self._mainloop.quit()

    def _manager(self, interface: str) -> dbus.Interface:
        return dbus.Interface(
            self._bus.get_object(BLUEZ_SERVICE_NAME, self._adapter_path),
            interface,
        )

    def _find_adapter(self) -> str:
        manager = dbus.Interface(self._bus.get_object(BLUEZ_SERVICE_NAME, "/"), DBUS_OM_IFACE)
        candidates = [
            str(path)
            for path, interfaces in manager.GetManagedObjects().items()
            if GATT_MANAGER_IFACE in interfaces and LE_ADVERTISING_MANAGER_IFACE in interfaces
        ]
        for path in candidates:
            if path.rsplit("/", 1)[-1] == self._adapter:
                return path
        if candidates:
            _LOGGER.warning("Adapter %s not found, using %s", self._adapter, candidates[0])
            return candidates[0]
        raise PeripheralError("No BLE adapter with GATT and advertising support found.")

    def _power_on_adapter(self) -> None:
        props = dbus.Interface(
            self._bus.get_object(BLUEZ_SERVICE_NAME, self._adapter_path),
            DBUS_PROP_IFACE,
        )
        if not props.Get(ADAPTER_IFACE, "Powered"):
            _LOGGER.info("Powering on adapter %s", self._adapter_path)
            props.Set(ADAPTER_IFACE, "Powered", dbus.Boolean(True))

    def _on_application_registered(self) -> None:
        _LOGGER.debug("GATT application registered")
        self._server.start()

    def _on_registration_error(self, error: dbus.exceptions.DBusException) -> None:
        _LOGGER.error("BlueZ registration failed: %s", error)
        self.stop()

    def _on_properties_changed(self, interface, changed, invalidated, path=None) -> None:
        if "Connected" not in changed:
            return
        device = str(path)
        if bool(changed["Connected"]):
            self._server.on_connect(device)
        else:
            self._server.on_disconnect(device)

    def _cleanup(self) -> None:
        if self._signal_match is not None:
            self._signal_match.remove()
            self._signal_match = None
        if self._bus is None or self._adapter_path is None:
            self._server.stop()
            return
        if self._advertisement is not None:
            try:
                self._manager(LE_ADVERTISING_MANAGER_IFACE).UnregisterAdvertisement(
                    self._advertisement.get_path()
                )
            except dbus.exceptions.DBusException as exc:
                _LOGGER.warning("Unregistering advertisement failed: %s", exc)
        if self._application is not None:
            try:
                self._manager(GATT_MANAGER_IFACE).UnregisterApplication(
                    self._application.get_path()
                )
            except dbus.exceptions.DBusException as exc:
                _LOGGER.warning("Unregistering GATT application failed: %s", exc)
        self._server.stop()
