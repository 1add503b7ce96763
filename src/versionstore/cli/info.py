"""vstore list / vstore info: show databases in the local catalog."""

from __future__ import annotations

import os

import typer

from versionstore.cli import _exitcodes as ec
from versionstore.cli._engine import catalog_path, open_engine, resolve_config
from versionstore.cli._output import print_error, print_object, print_table
from versionstore.errors import ConfigError


def _catalog_exists(db_path: str) -> bool:
    return db_path == ":memory:" or os.path.exists(db_path)


def list_cmd() -> None:
    """List databases and their versions."""
    from versionstore.cli import state

    try:
        config = resolve_config()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)
    if not _catalog_exists(catalog_path(config)):
        print_error(f"Catalog not found: {catalog_path(config)}")
        raise typer.Exit(ec.DATABASE_ERROR)

    engine = open_engine(config)
    try:
        rows = [[d["name"], d["version"]] for d in engine.databases()]
    finally:
        engine.close()

    if not rows and not state.json_output:
        print("(no databases)")
        return
    print_table(["name", "version"], rows, json_mode=state.json_output)


def info_cmd(name: str = typer.Argument(..., help="Database name")) -> None:
    """Show version and object stores of one database."""
    from versionstore.cli import state

    try:
        config = resolve_config()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)
    if not _catalog_exists(catalog_path(config)):
        print_error(f"Catalog not found: {catalog_path(config)}")
        raise typer.Exit(ec.DATABASE_ERROR)

    engine = open_engine(config)
    try:
        data = engine.describe(name)
    finally:
        engine.close()

    if data is None:
        print_error(f"Database not found: {name}")
        raise typer.Exit(ec.NOT_FOUND)

    if state.json_output:
        print_object(data, json_mode=True)
        return

    print(f"Database: {data['name']}")
    print(f"Version: {data['version']}")
    print(f"Updated: {data['updated_at']}")
    print("Object stores:")
    for store in data["object_stores"]:
        indexes = ", ".join(sorted(store["indexes"])) or "-"
        print(f"  {store['name']} (key_path={store['key_path']}, indexes: {indexes})")
