"""Public data models."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum, StrEnum
from typing import Any

from .exceptions import ValidationError

_WIRE_FIELDS = {
    "permit_number": "permitNumber",
    "plate_number": "plateNumber",
    "vehicle_name": "vehicleName",
    "valid_from": "validFrom",
    "valid_to": "validTo",
    "barcode_value": "barcodeValue",
    "barcode_label": "barcodeLabel",
    "price": "amountPaid",
}


def _coerce_str(value: Any, field: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a string.")
    if isinstance(value, str):
        return value
    if isinstance(value, int | float):
        return str(value)
    raise ValidationError(f"{field} must be a string.")


@dataclass(frozen=True, slots=True)
class Permit:
    permit_number: str = ""
    plate_number: str = ""
    vehicle_name: str = ""
    valid_from: str = ""
    valid_to: str = ""
    barcode_value: str = ""
    barcode_label: str = ""
    price: str = ""
    display_flipped: bool = False

    def is_valid(self) -> bool:
        return bool(self.permit_number)

    def is_complete(self) -> bool:
        """Return True when every field the display needs is present."""
        return all(
            (
                self.permit_number,
                self.plate_number,
                self.valid_from,
                self.valid_to,
                self.barcode_value,
                self.barcode_label,
            )
        )

    @classmethod
    def from_dict(cls, data: Any) -> Permit:
        if not isinstance(data, Mapping):
            raise ValidationError("Permit data must be a JSON object.")
        values = {
            attr: _coerce_str(data.get(wire_key), wire_key)
            for attr, wire_key in _WIRE_FIELDS.items()
        }
        flipped = data.get("displayFlipped", False)
        if not isinstance(flipped, bool):
            raise ValidationError("displayFlipped must be a boolean.")
        return cls(display_flipped=flipped, **values)

    @classmethod
    def from_json(cls, raw: str | bytes) -> Permit:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Permit data is not valid JSON.") from exc
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            wire_key: getattr(self, attr) for attr, wire_key in _WIRE_FIELDS.items()
        }
        data["displayFlipped"] = self.display_flipped
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


class SyncType(IntEnum):
    """Why the display is about to read the permit characteristic."""

    AUTO = 1
    MANUAL = 2
    FORCE = 3

    @classmethod
    def from_byte(cls, value: bytes) -> SyncType:
        if len(value) != 1:
            raise ValidationError("Sync type must be a single byte.")
        try:
            return cls(value[0])
        except ValueError as exc:
            raise ValidationError(f"Unknown sync type {value[0]}.") from exc

    @property
    def is_manual(self) -> bool:
        return self is not SyncType.AUTO


class PermitBadge(StrEnum):
    EXPIRED = "Expired"
    EXPIRING_TODAY = "Expiring Today"
    EXPIRING = "Expiring"
    CURRENT = "Current"


@dataclass(frozen=True, slots=True)
class SyncResult:
    permit: Permit
    is_new: bool


@dataclass(frozen=True, slots=True)
class ScheduledPermit:
    permit: Permit
    estimated: bool


@dataclass(frozen=True, slots=True)
class StoreSnapshot:
    """Point-in-time copy of the three permit tiers."""

    remote_permit: Permit | None
    display_permit: Permit | None
    display_permit_number: str | None
    previous_permit: Permit | None = None
    last_sync_time: int = 0
    last_display_sync_time: int = 0

    def is_display_out_of_sync(self) -> bool:
        if self.remote_permit is None or not self.remote_permit.is_valid():
            return False
        return (
            not self.display_permit_number
            or self.display_permit_number != self.remote_permit.permit_number
        )


@dataclass(frozen=True, slots=True)
class PermitStatus:
    current: Permit | None
    scheduled: ScheduledPermit | None
    badge: PermitBadge | None
    out_of_sync: bool
    last_sync: str
    last_display_sync: str
