from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from parkingpermitsync.config import _ENV_MAP, Settings
from parkingpermitsync.const import DEFAULT_DEVICE_NAME, DEFAULT_SYNC_HOUR, SCAN_TIMEOUT
from parkingpermitsync.exceptions import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_MAP:
        monkeypatch.delenv(key, raising=False)


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path))

    settings = Settings.from_env()

    assert settings.store_path == tmp_path / "parkingpermitsync" / "state.json"
    assert settings.remote_url is None
    assert settings.device_name == DEFAULT_DEVICE_NAME
    assert settings.scan_timeout == SCAN_TIMEOUT
    assert settings.sync_hour == DEFAULT_SYNC_HOUR


def test_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERMIT_SYNC_STORE", "/tmp/permit.json")
    monkeypatch.setenv("PERMIT_SYNC_URL", "https://example.test/permit.json")
    monkeypatch.setenv("PERMIT_SYNC_SCAN_TIMEOUT", "2.5")
    monkeypatch.setenv("PERMIT_SYNC_HOUR", "5")

    settings = Settings.from_env()

    assert settings.store_path == Path("/tmp/permit.json")
    assert settings.remote_url == "https://example.test/permit.json"
    assert settings.scan_timeout == 2.5
    assert settings.sync_hour == 5


def test_overrides_win_and_none_is_ignored(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERMIT_SYNC_HOUR", "5")
    monkeypatch.setenv("PERMIT_SYNC_URL", "https://env.test/permit.json")

    settings = Settings.from_env(sync_hour=7, store_path="state.json", remote_url=None)

    assert settings.sync_hour == 7
    assert settings.store_path == Path("state.json")
    assert settings.remote_url == "https://env.test/permit.json"


def test_invalid_environment_value(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PERMIT_SYNC_HOUR", "three")
    with pytest.raises(ConfigError, match="PERMIT_SYNC_HOUR"):
        Settings.from_env()


@pytest.mark.parametrize(
    "kwargs",
    [{"sync_hour": 24}, {"scan_timeout": 0}, {"http_timeout": -1.0}],
)
def test_invalid_values(kwargs: dict[str, float]) -> None:
    with pytest.raises(ConfigError):
        Settings(**kwargs)


def test_environment_map_covers_settings_fields() -> None:
    fields = {field.name for field in dataclasses.fields(Settings)}
    mapped = {field_name for field_name, _ in _ENV_MAP.values()}

    assert mapped == fields
    assert all(key.startswith("PERMIT_SYNC_") for key in _ENV_MAP)
