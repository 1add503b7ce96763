"""versionstore: lifecycle controller for versioned, event-driven storage engines."""

__version__ = "0.1.0"

from versionstore.config import VersionStoreConfig, load_config
from versionstore.errors import (
    BlockedError,
    CapabilityUnavailableError,
    ConfigError,
    DatabaseBlockedError,
    EngineError,
    VersionStoreError,
)
from versionstore.factory import (
    DeleteController,
    OpenController,
    VersionChangeResult,
    cmp,
    delete,
    delete_database,
    open,
    open_database,
)
from versionstore.source import ConnectionSource, default_source, engine, force_engine

__all__ = [
    "__version__",
    "open",
    "open_database",
    "delete",
    "delete_database",
    "cmp",
    "OpenController",
    "DeleteController",
    "VersionChangeResult",
    "ConnectionSource",
    "default_source",
    "engine",
    "force_engine",
    "VersionStoreConfig",
    "load_config",
    "VersionStoreError",
    "BlockedError",
    "CapabilityUnavailableError",
    "ConfigError",
    "DatabaseBlockedError",
    "EngineError",
]
