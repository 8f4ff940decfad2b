"""Library exceptions."""

from __future__ import annotations


class ParkingPermitSyncError(Exception):
    """Base exception for the library."""

    error_type = "unknown"
    default_error_code: str | None = None

    def __init__(
        self,
        message: str | None = None,
        *,
        error_code: str | None = None,
        detail: str | None = None,
        user_message: str | None = None,
    ) -> None:
        text = message or detail or ""
        super().__init__(text)
        self.error_code = error_code or self.default_error_code
        self.detail = detail or text
        self.user_message = user_message


class ValidationError(ParkingPermitSyncError):
    """Raised when inputs fail validation."""

    error_type = "validation"
    default_error_code = "validation_error"


class ConfigError(ParkingPermitSyncError):
    """Raised when configuration values are invalid."""

    error_type = "config"
    default_error_code = "config_error"


class StoreError(ParkingPermitSyncError):
    """Raised when the persistent store cannot be read or written."""

    error_type = "store"
    default_error_code = "store_error"


class SyncError(ParkingPermitSyncError):
    """Raised when fetching the remote permit fails."""

    error_type = "sync"
    default_error_code = "sync_error"


class HttpError(SyncError):
    """Raised when the remote source answers with a non-2xx status."""

    default_error_code = "http_error"

    def __init__(self, status: int, **kwargs: str | None) -> None:
        super().__init__(f"HTTP {status}", **kwargs)
        self.status = status


class InvalidDataError(SyncError):
    """Raised when the remote source returns unusable permit data."""

    default_error_code = "invalid_data"


class TransportError(SyncError):
    """Raised when the network request itself fails."""

    default_error_code = "transport_error"


class PushError(ParkingPermitSyncError):
    """Raised when commanding the display to refresh fails."""

    error_type = "push"
    default_error_code = "push_error"


class DisplayNotFoundError(PushError):
    """Raised when no display advertisement is seen within the scan window."""

    default_error_code = "not_found"


class ConnectionFailedError(PushError):
    """Raised when the link to a discovered display cannot be established."""

    default_error_code = "connection_failed"


class ProtocolMismatchError(PushError):
    """Raised when the display lacks the expected service or characteristic."""

    default_error_code = "protocol_mismatch"


class WriteFailedError(PushError):
    """Raised when the command write is not acknowledged."""

    default_error_code = "write_failed"


class PermissionDeniedError(PushError):
    """Raised when the Bluetooth stack refuses access."""

    default_error_code = "permission_denied"


class PeripheralError(ParkingPermitSyncError):
    """Raised when the BLE peripheral cannot be set up on the host stack."""

    error_type = "peripheral"
    default_error_code = "peripheral_error"
