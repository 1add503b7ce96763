"""Tests for the local engine's event protocol and catalog."""

from __future__ import annotations

import asyncio
import logging

import pytest

from tests.conftest import upgrade_books
from versionstore.errors import EngineError
from versionstore.sqlite_engine import SqliteEngine


def _track(request, log):
    request.on_success = lambda e: log.append("success")
    request.on_error = lambda e: (e.prevent_default(), log.append(f"error:{e.error.name}"))
    request.on_blocked = lambda e: log.append(f"blocked:{e.old_version}->{e.new_version}")
    request.on_upgrade_needed = lambda e: log.append(f"upgrade:{e.old_version}->{e.new_version}")


class TestEventSequence:
    @pytest.mark.asyncio
    async def test_create(self, engine):
        log: list[str] = []
        request = engine.open("library", 2)
        _track(request, log)
        await asyncio.sleep(0.01)
        assert log == ["upgrade:0->2", "success"]
        assert request.result.version == 2
        assert request.ready_state == "done"
        request.result.close()

    @pytest.mark.asyncio
    async def test_events_never_fire_synchronously(self, engine):
        log: list[str] = []
        request = engine.open("library")
        _track(request, log)
        assert log == []
        assert request.ready_state == "pending"
        await asyncio.sleep(0.01)
        assert log == ["upgrade:0->1", "success"]
        request.result.close()

    @pytest.mark.asyncio
    async def test_blocked_then_unblocked(self, engine):
        first = engine.open("library", 1)
        await asyncio.sleep(0.01)
        db1 = first.result

        log: list[str] = []
        second = engine.open("library", 2)
        _track(second, log)
        await asyncio.sleep(0.01)
        assert log == ["blocked:1->2"]

        db1.close()
        await asyncio.sleep(0.01)
        assert log == ["blocked:1->2", "upgrade:1->2", "success"]
        second.result.close()

    @pytest.mark.asyncio
    async def test_versionchange_notification(self, engine):
        first = engine.open("library", 1)
        await asyncio.sleep(0.01)
        seen = []
        first.result.on_versionchange = lambda e: seen.append((e.old_version, e.new_version))

        request = engine.delete_database("library")
        log: list[str] = []
        _track(request, log)
        await asyncio.sleep(0.01)
        assert seen == [(1, None)]
        assert log == ["blocked:1->None"]
        first.result.close()
        await asyncio.sleep(0.01)
        assert log[-1] == "success"

    @pytest.mark.asyncio
    async def test_version_error(self, engine):
        engine.open("library", 3)
        await asyncio.sleep(0.01)
        log: list[str] = []
        _track(engine.open("library", 1), log)
        await asyncio.sleep(0.01)
        assert log == ["error:VersionError"]

    @pytest.mark.asyncio
    async def test_upgrade_reaction_exception_aborts(self, engine):
        loop = asyncio.get_running_loop()
        reported = []
        loop.set_exception_handler(lambda _loop, context: reported.append(context["exception"]))

        log: list[str] = []
        request = engine.open("library", 1)
        _track(request, log)

        def explode(event):
            raise RuntimeError("in reaction")

        request.on_upgrade_needed = explode
        await asyncio.sleep(0.01)
        loop.set_exception_handler(None)

        assert log == ["error:AbortError"]
        assert isinstance(reported[0], RuntimeError)
        assert engine.describe("library") is None

    @pytest.mark.asyncio
    async def test_unprevented_error_is_reported(self, engine, caplog):
        engine.open("library", 3)
        await asyncio.sleep(0.01)
        with caplog.at_level(logging.WARNING, logger="versionstore.sqlite_engine"):
            engine.open("library", 1)
            await asyncio.sleep(0.01)
        assert any("VersionError" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_invalid_arguments_raise_synchronously(self, engine):
        with pytest.raises(TypeError):
            engine.open("library", 0)
        with pytest.raises(TypeError):
            engine.open(1)
        with pytest.raises(TypeError):
            engine.delete_database(None)


class TestSchema:
    @pytest.mark.asyncio
    async def test_store_definitions_persist(self, tmp_path):
        db_path = str(tmp_path / "catalog.db")
        engine = SqliteEngine(db_path)
        request = engine.open("library", 1)
        request.on_upgrade_needed = upgrade_books
        await asyncio.sleep(0.01)
        request.result.close()
        engine.close()

        reopened = SqliteEngine(db_path)
        info = reopened.describe("library")
        reopened.close()
        assert info["version"] == 1
        store = info["object_stores"][0]
        assert store["name"] == "books"
        assert store["key_path"] == "id"
        assert sorted(store["indexes"]) == ["byAuthor", "byTitle"]
        assert store["indexes"]["byTitle"]["unique"] is True

    @pytest.mark.asyncio
    async def test_schema_changes_outside_upgrade(self, engine):
        request = engine.open("library", 1)
        await asyncio.sleep(0.01)
        with pytest.raises(EngineError) as info:
            request.result.create_object_store("books")
        assert info.value.name == "InvalidStateError"

    @pytest.mark.asyncio
    async def test_schema_errors_inside_upgrade(self, engine):
        errors = []

        def upgrade(event):
            db = event.target.result
            db.create_object_store("books", key_path="id")
            for action in (
                lambda: db.create_object_store("books"),
                lambda: db.delete_object_store("authors"),
                lambda: db.create_object_store("bad", key_path="not a path"),
                lambda: db.create_object_store("ids", key_path=["a", "b"], auto_increment=True),
                lambda: event.target.transaction.object_store("books").delete_index("none"),
            ):
                try:
                    action()
                except EngineError as e:
                    errors.append(e.name)

        request = engine.open("library", 1)
        request.on_upgrade_needed = upgrade
        await asyncio.sleep(0.01)
        assert errors == [
            "ConstraintError",
            "NotFoundError",
            "SyntaxError",
            "InvalidAccessError",
            "NotFoundError",
        ]
        assert request.result.object_store_names == ["books"]
        request.result.close()

    @pytest.mark.asyncio
    async def test_upgrade_can_drop_stores(self, engine):
        first = engine.open("library", 1)
        first.on_upgrade_needed = upgrade_books
        await asyncio.sleep(0.01)
        first.result.close()

        second = engine.open("library", 2)
        second.on_upgrade_needed = lambda e: e.target.result.delete_object_store("books")
        await asyncio.sleep(0.01)
        assert second.result.object_store_names == []
        second.result.close()

    @pytest.mark.asyncio
    async def test_databases_listing(self, engine):
        for name, version in (("b", 2), ("a", 1)):
            engine.open(name, version)
        await asyncio.sleep(0.01)
        assert engine.databases() == [{"name": "a", "version": 1}, {"name": "b", "version": 2}]
        assert engine.describe("a")["open_connections"] == 1
        assert engine.describe("missing") is None
