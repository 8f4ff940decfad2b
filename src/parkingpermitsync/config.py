"""Runtime configuration."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from .const import (
    DEFAULT_ADAPTER,
    DEFAULT_DEVICE_NAME,
    DEFAULT_SYNC_HOUR,
    SCAN_TIMEOUT,
)
from .exceptions import ConfigError

_ENV_MAP: dict[str, tuple[str, Any]] = {
    "PERMIT_SYNC_STORE": ("store_path", Path),
    "PERMIT_SYNC_URL": ("remote_url", str),
    "PERMIT_SYNC_DEVICE_NAME": ("device_name", str),
    "PERMIT_SYNC_ADAPTER": ("adapter", str),
    "PERMIT_SYNC_SCAN_TIMEOUT": ("scan_timeout", float),
    "PERMIT_SYNC_HOUR": ("sync_hour", int),
    "PERMIT_SYNC_HTTP_TIMEOUT": ("http_timeout", float),
}


def _default_store_path() -> Path:
    base = os.environ.get("XDG_STATE_HOME") or os.path.join(Path.home(), ".local", "state")
    return Path(base) / "parkingpermitsync" / "state.json"


@dataclasses.dataclass(frozen=True)
class Settings:
    """Process settings.

    Values the user changes at runtime (remote URL, display orientation) are
    persisted in the store instead; ``remote_url`` here only overrides the
    stored value for the current process.

    Parameters
    ----------
    store_path : Path
        JSON file holding the permit store.
    remote_url : str or None
        Permit JSON URL override.
    device_name : str
        Local name advertised by the peripheral.
    adapter : str
        BlueZ adapter used for the peripheral role.
    scan_timeout : float
        Seconds to scan for the display before giving up.
    sync_hour : int
        Local hour of the daily remote sync.
    http_timeout : float
        Total timeout for the remote fetch in seconds.
    """

    store_path: Path = dataclasses.field(default_factory=_default_store_path)
    remote_url: str | None = None
    device_name: str = DEFAULT_DEVICE_NAME
    adapter: str = DEFAULT_ADAPTER
    scan_timeout: float = SCAN_TIMEOUT
    sync_hour: int = DEFAULT_SYNC_HOUR
    http_timeout: float = 30.0

    def __post_init__(self) -> None:
        if not 0 <= self.sync_hour <= 23:
            raise ConfigError("sync_hour must be between 0 and 23.")
        if self.scan_timeout <= 0:
            raise ConfigError("scan_timeout must be positive.")
        if self.http_timeout <= 0:
            raise ConfigError("http_timeout must be positive.")

    @classmethod
    def from_env(cls, **overrides: Any) -> Settings:
        """Create settings from ``PERMIT_SYNC_*`` environment variables.

        Explicit keyword arguments take precedence over the environment.
        """
        env = os.environ
        kwargs: dict[str, Any] = {}
        for env_key, (field_name, convert) in _ENV_MAP.items():
            raw = env.get(env_key)
            if raw is None or overrides.get(field_name) is not None:
                continue
            try:
                kwargs[field_name] = convert(raw)
            except ValueError as exc:
                raise ConfigError(f"{env_key} has an invalid value.") from exc
        for key, value in overrides.items():
            if value is not None:
                kwargs[key] = Path(value) if key == "store_path" else value
        return cls(**kwargs)
