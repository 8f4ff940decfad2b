from __future__ import annotations

import json
from typing import Any

import aiohttp
import pytest

from parkingpermitsync.const import DEFAULT_REMOTE_URL, SEED_PREVIOUS_PERMIT
from parkingpermitsync.exceptions import (
    HttpError,
    InvalidDataError,
    SyncError,
    TransportError,
    ValidationError,
)
from parkingpermitsync.models import Permit
from parkingpermitsync.store import PermitStore
from parkingpermitsync.sync import RemoteSyncer


class _FakeResponse:
    def __init__(self, payload: Any = None, *, status: int = 200, text_data: str | None = None):
        self.status = status
        self._text_data = text_data if text_data is not None else json.dumps(payload)

    async def text(self) -> str:
        return self._text_data


class _FakeRequestContext:
    def __init__(self, response: _FakeResponse) -> None:
        self._response = response

    async def __aenter__(self) -> _FakeResponse:
        return self._response

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _SequenceSession:
    def __init__(self, responses: list[object]) -> None:
        self._responses = responses
        self.calls: list[dict[str, Any]] = []
        self._index = 0

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeRequestContext:
        self.calls.append({"method": method, "url": url, "kwargs": kwargs})
        response = self._responses[self._index]
        self._index += 1
        if isinstance(response, Exception):
            raise response
        return _FakeRequestContext(response)


def _permit_payload(number: str) -> dict[str, str]:
    return {
        "permitNumber": number,
        "plateNumber": "ABC123",
        "validFrom": "Dec 30, 2025: 00:00",
        "validTo": "Jan 05, 2026: 23:59",
        "barcodeValue": number[1:],
        "barcodeLabel": number,
        "amountPaid": "$48.00",
    }


def _syncer(session: _SequenceSession, store: PermitStore | None = None) -> RemoteSyncer:
    return RemoteSyncer(session, store or PermitStore())  # type: ignore[arg-type]


def test_syncer_requires_session() -> None:
    with pytest.raises(ValidationError):
        RemoteSyncer(None, PermitStore())  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_sync_first_permit_keeps_seed_previous() -> None:
    store = PermitStore()
    session = _SequenceSession([_FakeResponse(_permit_payload("T1"))])

    result = await _syncer(session, store).sync()

    assert result.is_new is True
    assert result.permit.permit_number == "T1"
    assert store.get_remote_permit() == result.permit
    previous = store.get_previous_permit()
    assert previous is not None
    assert previous.permit_number == SEED_PREVIOUS_PERMIT["permitNumber"]
    assert store.get_last_sync_time() > 0


@pytest.mark.asyncio
async def test_sync_new_number_moves_old_permit_to_previous() -> None:
    store = PermitStore()
    session = _SequenceSession(
        [_FakeResponse(_permit_payload("P1")), _FakeResponse(_permit_payload("Q2"))]
    )
    syncer = _syncer(session, store)

    first = await syncer.sync()
    second = await syncer.sync()

    assert second.is_new is True
    assert store.get_previous_permit() == first.permit
    assert store.get_remote_permit() == second.permit


@pytest.mark.asyncio
async def test_sync_same_number_is_not_new_and_keeps_previous() -> None:
    store = PermitStore()
    session = _SequenceSession(
        [_FakeResponse(_permit_payload("P1")), _FakeResponse(_permit_payload("P1"))]
    )
    syncer = _syncer(session, store)

    await syncer.sync()
    previous_before = store.get_previous_permit()
    result = await syncer.sync()

    assert result.is_new is False
    assert store.get_previous_permit() == previous_before


@pytest.mark.asyncio
async def test_sync_uses_stored_url_and_no_cache_headers() -> None:
    store = PermitStore()
    store.set_remote_url("https://example.test/permit.json")
    session = _SequenceSession([_FakeResponse(_permit_payload("T1"))])

    await _syncer(session, store).sync()

    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://example.test/permit.json"
    assert call["kwargs"]["headers"]["Cache-Control"] == "no-cache"


@pytest.mark.asyncio
async def test_sync_url_override_wins_over_store() -> None:
    session = _SequenceSession([_FakeResponse(_permit_payload("T1"))])
    syncer = RemoteSyncer(
        session,  # type: ignore[arg-type]
        PermitStore(),
        url="https://override.test/permit.json",
    )

    await syncer.sync()

    assert session.calls[0]["url"] == "https://override.test/permit.json"


@pytest.mark.asyncio
async def test_sync_defaults_to_builtin_url() -> None:
    session = _SequenceSession([_FakeResponse(_permit_payload("T1"))])
    await _syncer(session).sync()
    assert session.calls[0]["url"] == DEFAULT_REMOTE_URL


@pytest.mark.asyncio
async def test_sync_http_error_leaves_store_untouched() -> None:
    store = PermitStore()
    store.save_remote_permit(Permit(permit_number="T1"))
    before = store.snapshot()
    session = _SequenceSession([_FakeResponse({}, status=503)])

    with pytest.raises(HttpError) as excinfo:
        await _syncer(session, store).sync()

    assert excinfo.value.status == 503
    assert str(excinfo.value) == "HTTP 503"
    assert store.snapshot() == before


@pytest.mark.asyncio
async def test_sync_transport_error_is_wrapped() -> None:
    session = _SequenceSession([aiohttp.ClientConnectionError("connection refused")])

    with pytest.raises(TransportError) as excinfo:
        await _syncer(session).sync()

    assert "connection refused" in str(excinfo.value)
    assert isinstance(excinfo.value, SyncError)


@pytest.mark.asyncio
async def test_sync_timeout_is_transport_error() -> None:
    session = _SequenceSession([TimeoutError()])
    with pytest.raises(TransportError, match="TimeoutError"):
        await _syncer(session).sync()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        _FakeResponse(text_data="<html>not json</html>"),
        _FakeResponse(["T1"]),
        _FakeResponse({"plateNumber": "ABC123"}),
        _FakeResponse({"permitNumber": {"nested": True}}),
    ],
)
async def test_sync_invalid_payload_raises_invalid_data(response: _FakeResponse) -> None:
    store = PermitStore()
    session = _SequenceSession([response])

    with pytest.raises(InvalidDataError):
        await _syncer(session, store).sync()

    assert store.get_remote_permit() is None
    assert store.get_last_sync_time() == 0


class _UndecodableResponse(_FakeResponse):
    async def text(self) -> str:
        raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")


@pytest.mark.asyncio
async def test_sync_non_utf8_body_raises_invalid_data() -> None:
    store = PermitStore()
    session = _SequenceSession([_UndecodableResponse()])

    with pytest.raises(InvalidDataError, match="UTF-8"):
        await _syncer(session, store).sync()

    assert store.get_remote_permit() is None
    assert store.get_last_sync_time() == 0
