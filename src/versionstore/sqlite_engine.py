"""Local versioned storage engine backed by a SQLite catalog.

The engine persists database names, versions and object-store definitions,
and runs the open/delete event protocol on the running asyncio loop:
operations on one name are queued FIFO, version changes notify and wait for
other open connections, and the upgrade transaction either commits the new
version and stores or aborts leaving the catalog untouched.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, cast

from pydantic import BaseModel
from pydantic import Field as PydanticField

from versionstore.errors import EngineError
from versionstore.events import ErrorEvent, Request, SuccessEvent, VersionChangeEvent
from versionstore.keys import compare_keys

logger = logging.getLogger(__name__)

_MISSING: Any = object()

KeyPath = str | list[str] | None


class IndexSpec(BaseModel):
    """Definition of an index on an object store."""

    name: str
    key_path: str | list[str]
    unique: bool = False
    multi_entry: bool = False


class ObjectStoreSpec(BaseModel):
    """Definition of an object store, as persisted in the catalog."""

    name: str
    key_path: KeyPath = None
    auto_increment: bool = False
    indexes: dict[str, IndexSpec] = PydanticField(default_factory=dict)


def _validate_key_path(key_path: Any) -> None:
    paths = key_path if isinstance(key_path, list) else [key_path]
    for path in paths:
        if not isinstance(path, str):
            raise EngineError("SyntaxError", f"Invalid key path: {key_path!r}")
        if path and not all(part.isidentifier() for part in path.split(".")):
            raise EngineError("SyntaxError", f"Invalid key path: {key_path!r}")


class UpgradeTransaction:
    """The version change transaction delivered with ``upgrade_needed``."""

    mode = "versionchange"

    def __init__(self, connection: LocalConnection, stores: dict[str, ObjectStoreSpec]) -> None:
        self.connection = connection
        self.stores = {name: spec.model_copy(deep=True) for name, spec in stores.items()}
        self.state = "active"

    @property
    def object_store_names(self) -> list[str]:
        return sorted(self.stores)

    def object_store(self, name: str) -> ObjectStoreHandle:
        self.require_active()
        spec = self.stores.get(name)
        if spec is None:
            raise EngineError("NotFoundError", f"No object store named '{name}'")
        return ObjectStoreHandle(self, spec)

    def abort(self) -> None:
        if self.state == "active":
            self.state = "aborting"

    def require_active(self) -> None:
        if self.state != "active" or self.connection.closed:
            raise EngineError("InvalidStateError", "The version change transaction is not active")


class ObjectStoreHandle:
    """Schema-level view of an object store inside an upgrade transaction."""

    def __init__(self, transaction: UpgradeTransaction, spec: ObjectStoreSpec) -> None:
        self._transaction = transaction
        self._spec = spec

    @property
    def name(self) -> str:
        return self._spec.name

    @property
    def key_path(self) -> KeyPath:
        return self._spec.key_path

    @property
    def auto_increment(self) -> bool:
        return self._spec.auto_increment

    @property
    def index_names(self) -> list[str]:
        return sorted(self._spec.indexes)

    def create_index(
        self,
        name: str,
        key_path: str | list[str],
        *,
        unique: bool = False,
        multi_entry: bool = False,
    ) -> IndexSpec:
        self._transaction.require_active()
        if name in self._spec.indexes:
            raise EngineError("ConstraintError", f"Index '{name}' already exists on '{self.name}'")
        _validate_key_path(key_path)
        if multi_entry and isinstance(key_path, list):
            raise EngineError("InvalidAccessError", "multi_entry indexes need a single key path")
        index = IndexSpec(name=name, key_path=key_path, unique=unique, multi_entry=multi_entry)
        self._spec.indexes[name] = index
        return index

    def delete_index(self, name: str) -> None:
        self._transaction.require_active()
        if self._spec.indexes.pop(name, None) is None:
            raise EngineError("NotFoundError", f"No index named '{name}' on '{self.name}'")


class LocalConnection:
    """A connection handed out by :class:`SqliteEngine`."""

    def __init__(
        self,
        engine: SqliteEngine,
        name: str,
        version: int,
        stores: dict[str, ObjectStoreSpec],
    ) -> None:
        self._engine = engine
        self.name = name
        self.version = version
        self.closed = False
        self.on_versionchange: Callable[[VersionChangeEvent], None] | None = None
        self._stores = stores
        self._upgrade: UpgradeTransaction | None = None

    @property
    def object_store_names(self) -> list[str]:
        if self._upgrade is not None:
            return self._upgrade.object_store_names
        return sorted(self._stores)

    def create_object_store(
        self,
        name: str,
        key_path: KeyPath = None,
        *,
        auto_increment: bool = False,
    ) -> ObjectStoreHandle:
        txn = self._require_upgrade()
        if name in txn.stores:
            raise EngineError("ConstraintError", f"Object store '{name}' already exists")
        if key_path is not None:
            _validate_key_path(key_path)
        if auto_increment and (key_path == "" or isinstance(key_path, list)):
            raise EngineError(
                "InvalidAccessError", "auto_increment needs an out-of-line or single key path"
            )
        spec = ObjectStoreSpec(name=name, key_path=key_path, auto_increment=auto_increment)
        txn.stores[name] = spec
        return ObjectStoreHandle(txn, spec)

    def delete_object_store(self, name: str) -> None:
        txn = self._require_upgrade()
        if txn.stores.pop(name, None) is None:
            raise EngineError("NotFoundError", f"No object store named '{name}'")

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._engine._connection_closed(self)

    def _require_upgrade(self) -> UpgradeTransaction:
        if self._upgrade is None:
            raise EngineError(
                "InvalidStateError", "Schema changes are only allowed during an upgrade"
            )
        self._upgrade.require_active()
        return self._upgrade

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"LocalConnection({self.name!r}, version={self.version}, {state})"


@dataclass
class _Operation:
    kind: str  # 'open' or 'delete'
    name: str
    request: Request
    loop: asyncio.AbstractEventLoop
    version: int | None = None
    old_version: int = 0
    new_version: int | None = None
    connection: LocalConnection | None = None
    waiting: bool = False
    stores: dict[str, ObjectStoreSpec] = field(default_factory=dict)


class SqliteEngine:
    """Versioned storage engine with a SQLite catalog.

    Requests are created synchronously; every event is delivered from the
    running event loop, so reactions attached right after ``open`` or
    ``delete_database`` returns are always in place.
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path)
        self._create_tables()
        self._live: dict[str, list[LocalConnection]] = {}
        self._queues: dict[str, deque[_Operation]] = {}
        self._active: dict[str, _Operation] = {}

    def _create_tables(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS databases (
                name        TEXT PRIMARY KEY,
                version     INTEGER NOT NULL,
                created_at  TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
            );

            CREATE TABLE IF NOT EXISTS object_stores (
                db_name     TEXT NOT NULL,
                store_name  TEXT NOT NULL,
                spec_json   TEXT NOT NULL,
                PRIMARY KEY (db_name, store_name)
            );
            """
        )
        self._conn.commit()

    # --- Engine protocol ---

    def open(self, name: str, version: int = _MISSING) -> Request:
        if not isinstance(name, str):
            raise TypeError(f"Database name must be a string, got {type(name).__name__}")
        if version is not _MISSING:
            if isinstance(version, bool) or not isinstance(version, int) or version < 1:
                raise TypeError(f"Version must be a positive integer, got {version!r}")
        request = Request("open", name)
        self._enqueue("open", name, request, None if version is _MISSING else version)
        return request

    def delete_database(self, name: str) -> Request:
        if not isinstance(name, str):
            raise TypeError(f"Database name must be a string, got {type(name).__name__}")
        request = Request("delete", name)
        self._enqueue("delete", name, request, None)
        return request

    def cmp(self, first: Any, second: Any) -> int:
        return compare_keys(first, second)

    # --- Inspection ---

    def databases(self) -> list[dict[str, Any]]:
        rows = self._conn.execute("SELECT name, version FROM databases ORDER BY name").fetchall()
        return [{"name": r[0], "version": int(r[1])} for r in rows]

    def describe(self, name: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            "SELECT version, created_at, updated_at FROM databases WHERE name = ?", (name,)
        ).fetchone()
        if row is None:
            return None
        stores = self._load_stores(name)
        return {
            "name": name,
            "version": int(row[0]),
            "created_at": row[1],
            "updated_at": row[2],
            "object_stores": [stores[s].model_dump() for s in sorted(stores)],
            "open_connections": len(self._live.get(name, [])),
        }

    def close(self) -> None:
        self._conn.close()

    # --- Catalog ---

    def _stored_version(self, name: str) -> int:
        row = self._conn.execute("SELECT version FROM databases WHERE name = ?", (name,)).fetchone()
        return int(row[0]) if row is not None else 0

    def _load_stores(self, name: str) -> dict[str, ObjectStoreSpec]:
        rows = self._conn.execute(
            "SELECT spec_json FROM object_stores WHERE db_name = ?", (name,)
        ).fetchall()
        specs = [ObjectStoreSpec.model_validate_json(r[0]) for r in rows]
        return {spec.name: spec for spec in specs}

    def _commit_version(self, name: str, version: int, stores: dict[str, ObjectStoreSpec]) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT INTO databases (name, version) VALUES (?, ?) "
                "ON CONFLICT(name) DO UPDATE SET version = excluded.version, "
                "updated_at = datetime('now')",
                (name, version),
            )
            self._conn.execute("DELETE FROM object_stores WHERE db_name = ?", (name,))
            self._conn.executemany(
                "INSERT INTO object_stores (db_name, store_name, spec_json) VALUES (?, ?, ?)",
                [(name, s.name, s.model_dump_json()) for s in stores.values()],
            )

    def _drop(self, name: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM object_stores WHERE db_name = ?", (name,))
            self._conn.execute("DELETE FROM databases WHERE name = ?", (name,))

    # --- Scheduling ---

    def _enqueue(self, kind: str, name: str, request: Request, version: int | None) -> None:
        loop = asyncio.get_running_loop()
        op = _Operation(kind=kind, name=name, request=request, loop=loop, version=version)
        self._queues.setdefault(name, deque()).append(op)
        loop.call_soon(self._start_next, name)

    def _start_next(self, name: str) -> None:
        if name in self._active:
            return
        queue = self._queues.get(name)
        if not queue:
            self._queues.pop(name, None)
            return
        op = queue.popleft()
        self._active[name] = op
        logger.debug("Starting %s of '%s'", op.kind, name)
        try:
            if op.kind == "open":
                self._run_open(op)
            else:
                self._run_delete(op)
        except sqlite3.Error as e:
            self._fail(op, EngineError("UnknownError", f"Catalog failure: {e}"))

    def _complete(self, op: _Operation) -> None:
        if self._active.get(op.name) is op:
            del self._active[op.name]
        op.loop.call_soon(self._start_next, op.name)

    def _dispatch(self, op: _Operation, kind: str, event: Any) -> BaseException | None:
        try:
            op.request.dispatch(kind, event)
        except Exception as exc:
            op.loop.call_exception_handler(
                {
                    "message": f"Unhandled exception in '{kind}' reaction for '{op.name}'",
                    "exception": exc,
                    "request": op.request,
                }
            )
            return exc
        return None

    def _succeed(self, op: _Operation, event: Any) -> None:
        self._dispatch(op, "success", event)
        self._complete(op)

    def _fail(self, op: _Operation, error: EngineError) -> None:
        op.request.error = error
        event = ErrorEvent(target=op.request, error=error)
        self._dispatch(op, "error", event)
        if not event.default_prevented:
            logger.warning(
                "Unhandled %s during %s of '%s': %s", error.name, op.kind, op.name, error.message
            )
        self._complete(op)

    # --- Connections ---

    def _register(self, conn: LocalConnection) -> None:
        live = self._live.setdefault(conn.name, [])
        if conn not in live:
            live.append(conn)

    def _connection_closed(self, conn: LocalConnection) -> None:
        live = self._live.get(conn.name, [])
        if conn in live:
            live.remove(conn)
        if not live:
            self._live.pop(conn.name, None)
        op = self._active.get(conn.name)
        if op is not None and op.waiting and not self._others(op):
            op.waiting = False
            logger.debug("Unblocked %s of '%s'", op.kind, op.name)
            op.loop.call_soon(self._proceed, op)

    def _others(self, op: _Operation) -> list[LocalConnection]:
        return [
            c for c in self._live.get(op.name, []) if c is not op.connection and not c.closed
        ]

    # --- Open / delete ---

    def _run_open(self, op: _Operation) -> None:
        stored = self._stored_version(op.name)
        requested = op.version if op.version is not None else (stored or 1)
        if requested < stored:
            self._fail(
                op,
                EngineError(
                    "VersionError",
                    f"Requested version ({requested}) is less than the existing version "
                    f"({stored})",
                ),
            )
            return

        op.old_version = stored
        op.new_version = requested
        op.stores = self._load_stores(op.name)
        op.connection = LocalConnection(self, op.name, stored, op.stores)
        if requested == stored:
            self._register(op.connection)
            op.request.result = op.connection
            self._succeed(op, SuccessEvent(target=op.request))
            return
        self._version_change(op)

    def _run_delete(self, op: _Operation) -> None:
        op.old_version = self._stored_version(op.name)
        op.new_version = None
        self._version_change(op)

    def _version_change(self, op: _Operation) -> None:
        for conn in self._others(op):
            handler = conn.on_versionchange
            if handler is None:
                continue
            try:
                handler(VersionChangeEvent("versionchange", conn, op.old_version, op.new_version))
            except Exception as exc:
                op.loop.call_exception_handler(
                    {"message": "Unhandled exception in versionchange handler", "exception": exc}
                )

        if self._others(op):
            op.waiting = True
            logger.debug("%s of '%s' blocked by open connections", op.kind, op.name)
            self._dispatch(
                op,
                "blocked",
                VersionChangeEvent("blocked", op.request, op.old_version, op.new_version),
            )
            return
        self._proceed(op)

    def _proceed(self, op: _Operation) -> None:
        try:
            if op.kind == "delete":
                self._drop(op.name)
                self._succeed(
                    op, VersionChangeEvent("success", op.request, op.old_version, None)
                )
            else:
                self._upgrade(op)
        except sqlite3.Error as e:
            self._fail(op, EngineError("UnknownError", f"Catalog failure: {e}"))

    def _upgrade(self, op: _Operation) -> None:
        conn = cast(LocalConnection, op.connection)
        txn = UpgradeTransaction(conn, op.stores)
        conn._upgrade = txn
        conn.version = cast(int, op.new_version)
        self._register(conn)
        op.request.result = conn
        op.request.transaction = txn

        exc = self._dispatch(
            op,
            "upgrade_needed",
            VersionChangeEvent("upgradeneeded", op.request, op.old_version, op.new_version),
        )
        if exc is not None:
            txn.abort()
        op.loop.call_soon(self._finish_upgrade, op, conn, txn)

    def _finish_upgrade(
        self, op: _Operation, conn: LocalConnection, txn: UpgradeTransaction
    ) -> None:
        conn._upgrade = None
        op.request.transaction = None

        if txn.state != "active" or conn.closed:
            txn.state = "aborted"
            conn.version = op.old_version
            conn.closed = True
            self._connection_closed(conn)
            op.request.result = None
            self._fail(op, EngineError("AbortError", "The version change transaction was aborted"))
            return

        try:
            self._commit_version(op.name, conn.version, txn.stores)
        except sqlite3.Error as e:
            txn.state = "aborted"
            conn.closed = True
            self._connection_closed(conn)
            op.request.result = None
            self._fail(op, EngineError("UnknownError", f"Catalog failure: {e}"))
            return
        txn.state = "committed"
        conn._stores = txn.stores
        self._succeed(op, SuccessEvent(target=op.request))
