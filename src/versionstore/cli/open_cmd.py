"""vstore open: open, create or upgrade a database.

Each invocation drives its own engine instance, so no other connection exists
to block the upgrade.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import typer

from versionstore.cli import _exitcodes as ec
from versionstore.cli._engine import open_engine, resolve_config, source_for
from versionstore.cli._output import print_error, print_object
from versionstore.errors import ConfigError, EngineError
from versionstore.factory import OpenController


def open_cmd(
    name: str = typer.Argument(..., help="Database name"),
    version: Optional[int] = typer.Option(
        None, "--version", min=1, help="Target version (default: current, or 1 if new)"
    ),
    stores: list[str] = typer.Option(
        [], "--store", help="Object store to create during an upgrade (repeatable)"
    ),
    key_path: Optional[str] = typer.Option(
        None, "--key-path", help="Key path for stores created with --store"
    ),
) -> None:
    """Open a database, creating or upgrading it when needed."""
    from versionstore.cli import state

    try:
        config = resolve_config()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    upgraded: dict[str, Any] = {}

    def upgrade(event: Any) -> None:
        connection = event.target.result
        upgraded["from"] = event.old_version
        for store in stores:
            if store not in connection.object_store_names:
                connection.create_object_store(store, key_path=key_path)

    engine = open_engine(config)
    controller = OpenController(source=source_for(engine), config=config)
    try:
        connection = asyncio.run(controller.open(name, version, upgrade))
    except EngineError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        engine.close()

    data: dict[str, Any] = {
        "name": connection.name,
        "version": connection.version,
        "object_stores": list(connection.object_store_names),
        "upgraded_from": upgraded.get("from"),
    }
    connection.close()
    print_object(data, json_mode=state.json_output)
