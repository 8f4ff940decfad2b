from parkingpermitsync.exceptions import (
    ConnectionFailedError,
    DisplayNotFoundError,
    HttpError,
    InvalidDataError,
    ParkingPermitSyncError,
    PeripheralError,
    PushError,
    StoreError,
    SyncError,
    TransportError,
    ValidationError,
)


def test_error_defaults() -> None:
    exc = ParkingPermitSyncError("base error")
    assert exc.error_type == "unknown"
    assert exc.error_code is None
    assert exc.detail == "base error"
    assert exc.user_message is None


def test_error_detail_fallback() -> None:
    exc = StoreError(detail="short detail")
    assert str(exc) == "short detail"
    assert exc.detail == "short detail"
    assert exc.error_code == "store_error"


def test_error_overrides() -> None:
    exc = TransportError(
        "network down",
        error_code="transport_timeout",
        detail="timeout fetching permit",
        user_message="Network issue. Please try again later.",
    )
    assert exc.error_type == "sync"
    assert exc.error_code == "transport_timeout"
    assert exc.detail == "timeout fetching permit"
    assert exc.user_message == "Network issue. Please try again later."


def test_http_error_carries_status() -> None:
    exc = HttpError(404)
    assert exc.status == 404
    assert str(exc) == "HTTP 404"
    assert exc.error_code == "http_error"
    assert isinstance(exc, SyncError)


def test_sync_error_codes() -> None:
    assert InvalidDataError().error_code == "invalid_data"
    assert TransportError().error_code == "transport_error"
    assert ValidationError().error_type == "validation"


def test_push_error_codes() -> None:
    assert DisplayNotFoundError().error_code == "not_found"
    assert ConnectionFailedError().error_code == "connection_failed"
    assert isinstance(DisplayNotFoundError(), PushError)
    assert PushError().error_type == "push"


def test_peripheral_error() -> None:
    exc = PeripheralError("No BLE adapter")
    assert exc.error_type == "peripheral"
    assert exc.error_code == "peripheral_error"
