"""Resolution of the storage engine active in the current process."""

from __future__ import annotations

import os
from typing import Callable

from versionstore.config import get_default_config
from versionstore.engine import EngineProtocol
from versionstore.errors import CapabilityUnavailableError

# Explicit override first, then the platform default, then vendor fallbacks.
BINDING_PRIORITY: tuple[str, ...] = ("force", "default", "webkit", "moz", "ms", "shim")

_local_engines: dict[str, EngineProtocol] = {}


def platform_default_engine() -> EngineProtocol | None:
    """Return the local engine for ``VERSIONSTORE_DB`` or the default config's ``db_path``.

    Returns None when neither names a catalog.

    One engine instance is kept per path so every caller shares its
    connection bookkeeping.
    """
    db_path = os.getenv("VERSIONSTORE_DB") or get_default_config().db_path
    if not db_path:
        return None
    engine = _local_engines.get(db_path)
    if engine is None:
        from versionstore.sqlite_engine import SqliteEngine

        engine = SqliteEngine(db_path)
        _local_engines[db_path] = engine
    return engine


class ConnectionSource:
    """Ordered set of named engine bindings; first bound name wins.

    Resolution is repeated on every call, so rebinding takes effect for all
    later operations.
    """

    def __init__(
        self,
        platform_default: Callable[[], EngineProtocol | None] | None = platform_default_engine,
    ) -> None:
        self._bindings: dict[str, EngineProtocol] = {}
        self._platform_default = platform_default

    def bind(self, name: str, engine: EngineProtocol | None) -> None:
        if name not in BINDING_PRIORITY:
            raise ValueError(f"Unknown binding '{name}'; expected one of {BINDING_PRIORITY}")
        if engine is None:
            self._bindings.pop(name, None)
        else:
            self._bindings[name] = engine

    @property
    def override(self) -> EngineProtocol | None:
        return self._bindings.get("force")

    @override.setter
    def override(self, engine: EngineProtocol | None) -> None:
        self.bind("force", engine)

    def resolve(self) -> EngineProtocol | None:
        for name in BINDING_PRIORITY:
            candidate = self._bindings.get(name)
            if candidate is None and name == "default" and self._platform_default is not None:
                candidate = self._platform_default()
            if candidate is not None:
                return candidate
        return None

    def require(self) -> EngineProtocol:
        engine = self.resolve()
        if engine is None:
            raise CapabilityUnavailableError(BINDING_PRIORITY)
        return engine


default_source = ConnectionSource()


def engine() -> EngineProtocol | None:
    """Resolve the engine from the process-wide default source."""
    return default_source.resolve()


def force_engine(engine: EngineProtocol | None) -> None:
    """Set (or with None, clear) the override binding of the default source."""
    default_source.override = engine
