"""Shared fixtures for CLI tests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from versionstore.cli import app
from versionstore.sqlite_engine import SqliteEngine

if TYPE_CHECKING:
    from click.testing import Result


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path):
    """Temp catalog path for the CLI."""
    return str(tmp_path / "cli_test.db")


@pytest.fixture
def seeded_db(cli_db):
    """Catalog with 'library' at version 2 holding a 'books' store, and 'empty' at version 1."""

    async def seed() -> None:
        engine = SqliteEngine(cli_db)
        library = engine.open("library", 2)
        library.on_upgrade_needed = lambda e: e.target.result.create_object_store(
            "books", key_path="id"
        )
        engine.open("empty")
        await asyncio.sleep(0.01)
        engine.close()

    asyncio.run(seed())
    return cli_db


def invoke(runner: CliRunner, args: list[str], db_path: str | None = None) -> "Result":
    """Invoke CLI with the catalog injected before the subcommand."""
    if db_path:
        args = ["--db", db_path] + args
    return runner.invoke(app, args, catch_exceptions=False)
