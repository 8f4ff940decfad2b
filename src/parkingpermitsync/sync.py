"""Remote permit fetch and the remote/previous tier update."""

from __future__ import annotations

import json
import logging
from typing import Any

import aiohttp

from .const import REQUEST_HEADERS
from .exceptions import HttpError, InvalidDataError, TransportError, ValidationError
from .models import Permit, SyncResult
from .store import PermitStore
from .util import mask_license_plate

_LOGGER = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=30)


class RemoteSyncer:
    """Fetch the permit JSON and fold it into the store.

    Each call performs one GET and at most one store write. Failures leave
    the store untouched and are never retried here; the caller (scheduler or
    user action) decides when to try again.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        store: PermitStore,
        *,
        timeout: aiohttp.ClientTimeout | None = None,
        url: str | None = None,
    ) -> None:
        if session is None:
            raise ValidationError("Session is required.")
        self._session = session
        self._store = store
        self._timeout = timeout or _DEFAULT_TIMEOUT
        self._url = url

    async def sync(self) -> SyncResult:
        url = self._url or self._store.get_remote_url()
        _LOGGER.debug("Remote sync started from %s", url)
        try:
            permit = self._map_permit(await self._fetch_json(url))
        except (HttpError, TransportError, InvalidDataError) as exc:
            _LOGGER.warning("Remote sync failed: %s", exc)
            raise

        old = self._store.get_remote_permit()
        is_new = old is None or old.permit_number != permit.permit_number
        previous = old if old is not None and is_new else None
        self._store.save_remote_permit(permit, previous=previous)
        _LOGGER.debug(
            "Remote sync completed: permit %s for %s (new=%s)",
            permit.permit_number,
            mask_license_plate(permit.plate_number),
            is_new,
        )
        return SyncResult(permit=permit, is_new=is_new)

    async def _fetch_json(self, url: str) -> Any:
        try:
            async with self._session.request(
                "GET",
                url,
                headers=dict(REQUEST_HEADERS),
                timeout=self._timeout,
            ) as response:
                self._raise_for_status(response)
                body = await response.text()
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        except UnicodeDecodeError as exc:
            raise InvalidDataError("Response body is not valid UTF-8.") from exc
        try:
            return json.loads(body)
        except ValueError as exc:
            raise InvalidDataError("Response did not contain valid JSON.") from exc

    def _raise_for_status(self, response: aiohttp.ClientResponse) -> None:
        if 200 <= response.status < 300:
            return
        raise HttpError(response.status)

    def _map_permit(self, data: Any) -> Permit:
        try:
            permit = Permit.from_dict(data)
        except ValidationError as exc:
            raise InvalidDataError("Invalid permit data.") from exc
        if not permit.is_valid():
            raise InvalidDataError("Invalid permit data.")
        return permit
