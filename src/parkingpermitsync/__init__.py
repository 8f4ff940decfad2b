"""parkingpermitsync package."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from .client import PermitSyncClient
from .events import EventBus
from .exceptions import ParkingPermitSyncError, PushError, SyncError, ValidationError
from .gatt_server import GattPermitServer
from .models import Permit, PermitBadge, PermitStatus, SyncType
from .push import DisplayPushClient
from .store import PermitStore
from .sync import RemoteSyncer

try:
    __version__ = version("parkingpermitsync")
except PackageNotFoundError:  # pragma: no cover - not installed
    __version__ = "0.0.0"

__all__ = [
    "DisplayPushClient",
    "EventBus",
    "GattPermitServer",
    "ParkingPermitSyncError",
    "Permit",
    "PermitBadge",
    "PermitStatus",
    "PermitStore",
    "PermitSyncClient",
    "PushError",
    "RemoteSyncer",
    "SyncError",
    "SyncType",
    "ValidationError",
    "__version__",
]
