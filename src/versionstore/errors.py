"""Structured error types for versionstore."""

from __future__ import annotations

import asyncio
from typing import Any


class VersionStoreError(Exception):
    """Base error for all versionstore errors."""


class ConfigError(VersionStoreError):
    """Raised when a configuration file or environment value is invalid."""


class CapabilityUnavailableError(VersionStoreError):
    """Raised when no storage engine is bound in the current process."""

    def __init__(self, searched: tuple[str, ...]) -> None:
        self.searched = searched
        super().__init__(
            f"No storage engine available (searched bindings: {', '.join(searched)}). "
            "Bind one with force_engine() or set VERSIONSTORE_DB."
        )


class EngineError(VersionStoreError):
    """Failure reported by the storage engine.

    ``name`` follows the engine's error vocabulary: ``VersionError``,
    ``AbortError``, ``DataError``, ``InvalidStateError``, ``ConstraintError``,
    ``NotFoundError``, ``SyntaxError``, ``InvalidAccessError`` or ``UnknownError``.
    """

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        self.message = message
        super().__init__(f"{name}: {message}")


class BlockedError(VersionStoreError):
    """Raised when an open or delete is blocked by another live connection.

    ``resume`` is a future bound to the same pending engine request. It settles
    with the value the original call would have returned once the blocking
    connections close.
    """

    def __init__(
        self,
        old_version: int | None,
        new_version: int | None,
        resume: asyncio.Future[Any],
        *,
        event: Any = None,
    ) -> None:
        self.old_version = old_version
        self.new_version = new_version
        self.resume = resume
        self.event = event
        target = "deletion" if new_version is None else f"upgrade to version {new_version}"
        super().__init__(
            f"{target.capitalize()} blocked by open connection(s) at version {old_version}; "
            "close them and await .resume"
        )


class DatabaseBlockedError(VersionStoreError):
    """Raised by the retry blocked-policy once its single retry is also blocked."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Database '{name}' is blocked")
