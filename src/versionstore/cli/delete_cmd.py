"""vstore delete: delete a database.

Each invocation drives its own engine instance, so the delete is never blocked.
"""

from __future__ import annotations

import asyncio

import typer

from versionstore.cli import _exitcodes as ec
from versionstore.cli._engine import open_engine, resolve_config, source_for
from versionstore.cli._output import print_error, print_object
from versionstore.errors import ConfigError, EngineError
from versionstore.factory import DeleteController


def delete_cmd(
    name: str = typer.Argument(..., help="Database name"),
    missing_ok: bool = typer.Option(
        True, "--missing-ok/--strict", help="Succeed when the database does not exist"
    ),
) -> None:
    """Delete a database."""
    from versionstore.cli import state

    try:
        config = resolve_config()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    engine = open_engine(config)
    controller = DeleteController(source=source_for(engine), config=config)
    try:
        existed = engine.describe(name) is not None
        if not existed and not missing_ok:
            print_error(f"Database not found: {name}")
            raise typer.Exit(ec.NOT_FOUND)
        result = asyncio.run(controller.delete(name))
    except EngineError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        engine.close()

    print_object(
        {
            "name": name,
            "deleted": existed,
            "old_version": result.old_version,
            "new_version": result.new_version,
        },
        json_mode=state.json_output,
    )
