"""Open/delete controllers driving the engine's event protocol.

Each call issues exactly one engine request and settles a single future from
the request's reactions. When the engine reports the request as blocked, the
call fails with :class:`BlockedError` and the request's continuation slot is
re-armed with a fresh ``resume`` future: the same pending request later
settles ``resume`` instead of the (already failed) original call.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from versionstore.config import VersionStoreConfig, get_default_config
from versionstore.engine import ConnectionProtocol, EngineProtocol
from versionstore.errors import BlockedError, DatabaseBlockedError, EngineError
from versionstore.events import Request
from versionstore.source import ConnectionSource, default_source

logger = logging.getLogger(__name__)

UpgradeRoutine = Callable[[Any], None]

_MISSING: Any = object()


@dataclass(frozen=True)
class VersionChangeResult:
    """Outcome of a successful deletion."""

    old_version: int | None
    new_version: None = None


def _settle(
    future: asyncio.Future[Any],
    *,
    result: Any = None,
    error: BaseException | None = None,
) -> bool:
    """Resolve or reject ``future`` unless it already settled."""
    if future.done():
        return False
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)
    return True


def _check_name(name: Any) -> None:
    if not isinstance(name, str):
        raise TypeError(f"Database name must be a string, got {type(name).__name__}")
    if not name:
        raise ValueError("Database name must not be empty")


def _engine_error(event: Any) -> BaseException:
    prevent = getattr(event, "prevent_default", None)
    if prevent is not None:
        prevent()
    error = getattr(event, "error", None)
    if isinstance(error, BaseException):
        return error
    return EngineError("UnknownError", f"Engine reported a failure without an error: {event!r}")


@dataclass
class _OpenRequest:
    name: str
    version: int | None
    upgrade: UpgradeRoutine | None
    continuation: asyncio.Future[Any]
    blocked: BlockedError | None = None


@dataclass
class _DeleteRequest:
    name: str
    continuation: asyncio.Future[Any]
    first_attempt: bool = True
    blocked: BlockedError | None = None


class _Controller:
    def __init__(
        self,
        source: ConnectionSource | None = None,
        config: VersionStoreConfig | None = None,
    ) -> None:
        self._source = source or default_source
        self._config = config

    @property
    def config(self) -> VersionStoreConfig:
        return self._config or get_default_config()

    def _arm_resume(
        self,
        state: _OpenRequest | _DeleteRequest,
        make_blocked: Callable[[asyncio.Future[Any]], BlockedError],
    ) -> None:
        if state.blocked is not None:
            return
        resume: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        blocked = make_blocked(resume)
        state.blocked = blocked
        pending, state.continuation = state.continuation, resume
        _settle(pending, error=blocked)


class OpenController(_Controller):
    """Opens (creating or upgrading as needed) a named database."""

    async def open(
        self,
        name: str,
        version: int | UpgradeRoutine | None = None,
        upgrade: UpgradeRoutine | None = None,
    ) -> ConnectionProtocol:
        """Open ``name``, optionally at ``version``, running ``upgrade`` on version change.

        ``upgrade`` may also be passed in place of ``version``. Raises
        :class:`BlockedError` when other connections hold the database open;
        await its ``resume`` after closing them.
        """
        if callable(version) and upgrade is None:
            upgrade, version = version, None
        _check_name(name)
        if version is not None and (
            isinstance(version, bool) or not isinstance(version, int) or version < 1
        ):
            raise TypeError(f"Version must be a positive integer, got {version!r}")

        factory = self._source.require()
        loop = asyncio.get_running_loop()
        state = _OpenRequest(
            name=name,
            version=version,
            upgrade=upgrade,
            continuation=loop.create_future(),
        )
        outcome = state.continuation
        self._issue(factory, state)
        return await outcome

    def _issue(self, factory: EngineProtocol, state: _OpenRequest) -> Request:
        # Some engines treat an explicit empty version differently from omission.
        if state.version is not None:
            request = factory.open(state.name, state.version)
        else:
            request = factory.open(state.name)
        logger.debug("Issued open of '%s' (version=%s)", state.name, state.version)

        request.on_success = lambda event: self._on_success(state, event)
        request.on_error = lambda event: self._on_error(state, event)
        request.on_blocked = lambda event: self._on_blocked(state, event)
        upgrade = state.upgrade
        if upgrade is not None:
            request.on_upgrade_needed = lambda event: self._on_upgrade_needed(state, upgrade, event)
        return request

    def _on_success(self, state: _OpenRequest, event: Any) -> None:
        connection = event.target.result
        if _settle(state.continuation, result=connection):
            logger.debug(
                "Opened '%s' at version %s", state.name, getattr(connection, "version", None)
            )

    def _on_error(self, state: _OpenRequest, event: Any) -> None:
        _settle(state.continuation, error=_engine_error(event))

    def _on_blocked(self, state: _OpenRequest, event: Any) -> None:
        logger.debug("Open of '%s' blocked", state.name)
        self._arm_resume(
            state,
            lambda resume: BlockedError(
                old_version=getattr(event, "old_version", None),
                new_version=getattr(event, "new_version", state.version),
                resume=resume,
                event=event,
            ),
        )

    def _on_upgrade_needed(
        self, state: _OpenRequest, upgrade: UpgradeRoutine, event: Any
    ) -> None:
        try:
            upgrade(event)
        except Exception as err:
            # Closing aborts the engine's upgrade transaction; its abort error
            # arrives after the continuation has already settled with ``err``.
            event.target.result.close()
            logger.debug("Upgrade routine for '%s' failed: %r", state.name, err)
            _settle(state.continuation, error=err)


class DeleteController(_Controller):
    """Deletes a database by name or through one of its open connections."""

    async def delete(self, target: str | ConnectionProtocol) -> VersionChangeResult:
        """Delete the database named by ``target``.

        A connection is closed first, then the call waits ``flush_delay_s`` so
        the engine can persist pending writes before the delete is issued.
        """
        name: Any = target if isinstance(target, str) else getattr(target, "name", None)
        _check_name(name)
        factory = self._source.require()

        if not isinstance(target, str):
            target.close()
            delay = self.config.flush_delay_s
            logger.debug("Closed '%s'; waiting %.3fs before delete", name, delay)
            await asyncio.sleep(delay)

        loop = asyncio.get_running_loop()
        state = _DeleteRequest(name=name, continuation=loop.create_future())
        outcome = state.continuation
        self._issue(factory, state)
        return await outcome

    def _issue(self, factory: EngineProtocol, state: _DeleteRequest) -> Request:
        request = factory.delete_database(state.name)
        logger.debug("Issued delete of '%s'", state.name)
        request.on_success = lambda event: self._on_success(state, event)
        request.on_error = lambda event: self._on_error(state, event)
        request.on_blocked = lambda event: self._on_blocked(factory, state, event)
        return request

    def _retry(self, factory: EngineProtocol, state: _DeleteRequest) -> None:
        try:
            self._issue(factory, state)
        except Exception as err:
            _settle(state.continuation, error=err)

    def _on_success(self, state: _DeleteRequest, event: Any) -> None:
        old_version = getattr(event, "old_version", _MISSING)
        if old_version is _MISSING:
            old_version = state.blocked.old_version if state.blocked is not None else None
        if _settle(state.continuation, result=VersionChangeResult(old_version=old_version)):
            logger.debug("Deleted '%s' (was version %s)", state.name, old_version)

    def _on_error(self, state: _DeleteRequest, event: Any) -> None:
        _settle(state.continuation, error=_engine_error(event))

    def _on_blocked(self, factory: EngineProtocol, state: _DeleteRequest, event: Any) -> None:
        logger.debug("Delete of '%s' blocked", state.name)
        if self.config.blocked_policy == "retry":
            if state.first_attempt:
                state.first_attempt = False
                asyncio.get_running_loop().call_later(
                    self.config.retry_delay_s, self._retry, factory, state
                )
            else:
                _settle(state.continuation, error=DatabaseBlockedError(state.name))
            return

        # Deletion never has a new version, whatever the engine reports.
        self._arm_resume(
            state,
            lambda resume: BlockedError(
                old_version=getattr(event, "old_version", None),
                new_version=None,
                resume=resume,
                event=event,
            ),
        )


async def open(
    name: str,
    version: int | UpgradeRoutine | None = None,
    upgrade: UpgradeRoutine | None = None,
) -> ConnectionProtocol:
    """Open a database through the default connection source."""
    return await OpenController().open(name, version, upgrade)


async def delete(target: str | ConnectionProtocol) -> VersionChangeResult:
    """Delete a database through the default connection source."""
    return await DeleteController().delete(target)


def cmp(first: Any, second: Any) -> int:
    """Compare two keys with the active engine's ordering."""
    return default_source.require().cmp(first, second)


open_database = open
delete_database = delete
