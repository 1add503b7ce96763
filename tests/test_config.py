"""Tests for config loading and environment overrides."""

from __future__ import annotations

import pytest

from versionstore.config import (
    VersionStoreConfig,
    config_from_env,
    get_default_config,
    load_config,
    set_default_config,
)
from versionstore.errors import ConfigError


def test_defaults() -> None:
    cfg = VersionStoreConfig()
    assert cfg.flush_delay_s == 0.1
    assert cfg.blocked_policy == "resume"
    assert cfg.db_path is None


def test_invalid_policy() -> None:
    with pytest.raises(ConfigError):
        VersionStoreConfig(blocked_policy="forever")


def test_negative_delay() -> None:
    with pytest.raises(ConfigError):
        VersionStoreConfig(flush_delay_s=-1)


def test_load_yaml(tmp_path) -> None:
    path = tmp_path / "vstore.yaml"
    path.write_text("flush_delay_s: 0.25\nblocked_policy: retry\n")
    cfg = load_config(str(path))
    assert cfg.flush_delay_s == 0.25
    assert cfg.blocked_policy == "retry"


def test_load_empty_yaml(tmp_path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(str(path)) == VersionStoreConfig()


@pytest.mark.parametrize(
    "content",
    [
        "unknown_key: 1\n",
        "- a\n- b\n",
        "flush_delay_s: [\n",
        "flush_delay_s: fast\n",
        "retry_delay_s: true\n",
        "flush_delay_s: [0.1]\n",
        "db_path: 42\n",
    ],
)
def test_load_invalid_yaml(tmp_path, content) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text(content)
    with pytest.raises(ConfigError):
        load_config(str(path))


def test_load_yaml_db_path(tmp_path) -> None:
    path = tmp_path / "vstore.yaml"
    path.write_text(f"db_path: {tmp_path / 'catalog.db'}\nretry_delay_s: 1\n")
    cfg = load_config(str(path))
    assert cfg.db_path == str(tmp_path / "catalog.db")
    assert cfg.retry_delay_s == 1


def test_load_missing_file(tmp_path) -> None:
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "nope.yaml"))


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("VERSIONSTORE_FLUSH_DELAY_MS", "250")
    monkeypatch.setenv("VERSIONSTORE_BLOCKED_POLICY", "retry")
    monkeypatch.setenv("VERSIONSTORE_DB", "/tmp/catalog.db")
    cfg = config_from_env(VersionStoreConfig(retry_delay_s=0.5))
    assert cfg.flush_delay_s == 0.25
    assert cfg.blocked_policy == "retry"
    assert cfg.db_path == "/tmp/catalog.db"
    assert cfg.retry_delay_s == 0.5


def test_env_bad_delay(monkeypatch) -> None:
    monkeypatch.setenv("VERSIONSTORE_FLUSH_DELAY_MS", "soon")
    with pytest.raises(ConfigError):
        config_from_env()


def test_default_config_roundtrip(monkeypatch) -> None:
    monkeypatch.delenv("VERSIONSTORE_FLUSH_DELAY_MS", raising=False)
    custom = VersionStoreConfig(flush_delay_s=0)
    set_default_config(custom)
    try:
        assert get_default_config() is custom
    finally:
        set_default_config(None)
    assert get_default_config().flush_delay_s == 0.1
    set_default_config(None)
