"""CLI helpers for config resolution and engine construction."""

from __future__ import annotations

import os

from versionstore.config import VersionStoreConfig, config_from_env, load_config
from versionstore.source import ConnectionSource
from versionstore.sqlite_engine import SqliteEngine

DEFAULT_CATALOG = "vstore.db"


def resolve_config() -> VersionStoreConfig:
    """Build config from --config, the environment, then --db when given."""
    from dataclasses import replace

    from versionstore.cli import state

    base = load_config(state.config) if state.config else None
    cfg = config_from_env(base)
    return replace(cfg, db_path=state.db) if state.db else cfg


def catalog_path(config: VersionStoreConfig) -> str:
    return config.db_path or DEFAULT_CATALOG


def open_engine(config: VersionStoreConfig) -> SqliteEngine:
    """Open the local engine for the configured catalog path."""
    db_path = catalog_path(config)
    if db_path != ":memory:":
        parent = os.path.dirname(os.path.abspath(db_path))
        os.makedirs(parent, exist_ok=True)
    return SqliteEngine(db_path)


def source_for(engine: SqliteEngine) -> ConnectionSource:
    """A connection source pinned to ``engine``, ignoring process-wide bindings."""
    source = ConnectionSource(platform_default=None)
    source.override = engine
    return source
