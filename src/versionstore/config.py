"""Configuration for versionstore controllers."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any

import yaml

from versionstore.errors import ConfigError

BLOCKED_POLICIES = ("resume", "retry")


@dataclass
class VersionStoreConfig:
    """Configuration for open/delete controllers."""

    flush_delay_s: float = 0.1
    # "retry" is honoured by deletes only; opens always hand back a resume future.
    blocked_policy: str = "resume"
    retry_delay_s: float = 0.1
    db_path: str | None = None

    def __post_init__(self) -> None:
        if self.blocked_policy not in BLOCKED_POLICIES:
            raise ConfigError(
                f"blocked_policy must be one of {BLOCKED_POLICIES}, got {self.blocked_policy!r}"
            )
        for key in ("flush_delay_s", "retry_delay_s"):
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{key} must be a number of seconds, got {value!r}")
            if value < 0:
                raise ConfigError(f"{key} must be non-negative, got {value!r}")
        if self.db_path is not None and not isinstance(self.db_path, str):
            raise ConfigError(f"db_path must be a string, got {self.db_path!r}")


def load_config(path: str) -> VersionStoreConfig:
    """Load a config from a YAML mapping.

    Unknown keys raise ConfigError rather than being ignored.
    """
    try:
        with open(path, encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except OSError as e:
        raise ConfigError(f"Cannot read config file '{path}': {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in '{path}': {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping")

    known = {f.name for f in fields(VersionStoreConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys in '{path}': {unknown}")
    return VersionStoreConfig(**raw)


def config_from_env(base: VersionStoreConfig | None = None) -> VersionStoreConfig:
    """Apply VERSIONSTORE_* environment overrides on top of ``base``."""
    cfg = base or VersionStoreConfig()
    overrides: dict[str, Any] = {}

    flush_ms = os.getenv("VERSIONSTORE_FLUSH_DELAY_MS")
    if flush_ms:
        try:
            overrides["flush_delay_s"] = int(flush_ms) / 1000
        except ValueError as e:
            raise ConfigError(f"VERSIONSTORE_FLUSH_DELAY_MS must be an integer: {flush_ms}") from e

    policy = os.getenv("VERSIONSTORE_BLOCKED_POLICY")
    if policy:
        overrides["blocked_policy"] = policy

    db_path = os.getenv("VERSIONSTORE_DB")
    if db_path:
        overrides["db_path"] = db_path

    return replace(cfg, **overrides) if overrides else cfg


_default_config: VersionStoreConfig | None = None


def get_default_config() -> VersionStoreConfig:
    """Return the process-wide config used by the module-level functions."""
    global _default_config
    if _default_config is None:
        _default_config = config_from_env()
    return _default_config


def set_default_config(config: VersionStoreConfig | None) -> None:
    """Replace the process-wide config; ``None`` re-reads the environment on next use."""
    global _default_config
    _default_config = config
