"""Engine request and event primitives.

An engine answers ``open`` and ``delete_database`` with a :class:`Request`
whose reaction slots it invokes as the operation progresses. A slot can be
reassigned at any time while the request is pending; the engine always calls
whatever is attached when the event fires.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from versionstore.errors import EngineError

Reaction = Callable[[Any], None]

EVENT_KINDS = ("success", "error", "blocked", "upgrade_needed")


class Request:
    """A pending engine operation with replaceable reaction slots."""

    def __init__(self, operation: str, name: str) -> None:
        self.operation = operation
        self.name = name
        self.ready_state = "pending"
        self.result: Any = None
        self.error: EngineError | None = None
        self.transaction: Any = None
        self.on_success: Reaction | None = None
        self.on_error: Reaction | None = None
        self.on_blocked: Reaction | None = None
        self.on_upgrade_needed: Reaction | None = None

    def dispatch(self, kind: str, event: Any) -> None:
        """Invoke the reaction currently attached for ``kind``, if any."""
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown request event kind: {kind}")
        if kind in ("success", "error"):
            self.ready_state = "done"
        reaction = getattr(self, f"on_{kind}")
        if reaction is not None:
            reaction(event)

    def __repr__(self) -> str:
        return f"Request({self.operation!r}, {self.name!r}, ready_state={self.ready_state!r})"


@dataclass
class VersionChangeEvent:
    """Payload for ``blocked``, ``upgrade_needed``, ``versionchange`` and delete ``success``."""

    type: str
    target: Any
    old_version: int
    new_version: int | None


@dataclass
class SuccessEvent:
    """Payload for open ``success``; the connection is ``target.result``."""

    target: Any
    type: str = "success"


@dataclass
class ErrorEvent:
    """Payload for ``error``.

    Unless a reaction calls :meth:`prevent_default`, the engine reports the
    error itself after dispatch.
    """

    target: Any
    error: EngineError
    type: str = "error"
    default_prevented: bool = field(default=False)

    def prevent_default(self) -> None:
        self.default_prevented = True
