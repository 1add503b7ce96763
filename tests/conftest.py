"""Shared test fixtures for versionstore tests."""

from __future__ import annotations

from typing import Any

import pytest

from versionstore.config import VersionStoreConfig, set_default_config
from versionstore.events import Request
from versionstore.factory import DeleteController, OpenController
from versionstore.keys import compare_keys
from versionstore.source import ConnectionSource, force_engine
from versionstore.sqlite_engine import SqliteEngine

# --- Upgrade routines ---


def upgrade_books(event: Any) -> None:
    db = event.target.result
    books = db.create_object_store("books", key_path="id")
    books.create_index("byTitle", "title", unique=True)
    books.create_index("byAuthor", "author")


# --- Engine doubles ---


class ScriptedEngine:
    """Engine double: records calls and hands back requests for tests to drive."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.requests: list[Request] = []

    def open(self, name: str, *version: int) -> Request:
        self.calls.append(("open", name, *version))
        return self._request("open", name)

    def delete_database(self, name: str) -> Request:
        self.calls.append(("delete", name))
        return self._request("delete", name)

    def cmp(self, first: Any, second: Any) -> int:
        return compare_keys(first, second)

    def _request(self, operation: str, name: str) -> Request:
        request = Request(operation, name)
        self.requests.append(request)
        return request


class FakeHandle:
    """Connection double that records when it was closed."""

    def __init__(self, name: str, version: int = 1) -> None:
        self.name = name
        self.version = version
        self.closed = False

    def close(self) -> None:
        self.closed = True


# --- Fixtures ---


@pytest.fixture
def fast_config():
    return VersionStoreConfig(flush_delay_s=0.01, retry_delay_s=0.01)


@pytest.fixture
def engine():
    """In-memory local engine."""
    e = SqliteEngine(":memory:")
    yield e
    e.close()


@pytest.fixture
def scripted():
    return ScriptedEngine()


@pytest.fixture
def source(engine):
    s = ConnectionSource(platform_default=None)
    s.override = engine
    return s


@pytest.fixture
def scripted_source(scripted):
    s = ConnectionSource(platform_default=None)
    s.override = scripted
    return s


@pytest.fixture
def opener(source, fast_config):
    return OpenController(source=source, config=fast_config)


@pytest.fixture
def deleter(source, fast_config):
    return DeleteController(source=source, config=fast_config)


@pytest.fixture
def forced_engine(engine, fast_config):
    """Bind ``engine`` as the process-wide override for module-level calls."""
    force_engine(engine)
    set_default_config(fast_config)
    yield engine
    force_engine(None)
    set_default_config(None)
