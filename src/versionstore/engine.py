"""Engine and connection protocols consumed by the controllers."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from versionstore.events import Request


@runtime_checkable
class ConnectionProtocol(Protocol):
    """An open connection to one named database."""

    name: str
    version: int

    def close(self) -> None: ...


@runtime_checkable
class EngineProtocol(Protocol):
    """A versioned storage engine with an event-driven open/delete protocol.

    ``open`` must distinguish a call without a version from one with a version;
    callers never pass ``None`` to mean "latest".
    """

    def open(self, name: str, version: int = ...) -> Request: ...

    def delete_database(self, name: str) -> Request: ...

    def cmp(self, first: Any, second: Any) -> int: ...
