"""vstore cmp: compare two keys with the engine's key ordering."""

from __future__ import annotations

import json
from typing import Any

import typer

from versionstore.cli import _exitcodes as ec
from versionstore.cli._output import print_error
from versionstore.cli._engine import source_for
from versionstore.errors import EngineError
from versionstore.sqlite_engine import SqliteEngine


def _parse_key(raw: str) -> Any:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    return value


def cmp_cmd(
    first: str = typer.Argument(..., help="First key (JSON, or a bare string)"),
    second: str = typer.Argument(..., help="Second key (JSON, or a bare string)"),
) -> None:
    """Print -1, 0 or 1 comparing two keys."""
    a, b = _parse_key(first), _parse_key(second)
    # Key ordering needs no catalog.
    engine = SqliteEngine(":memory:")
    try:
        result = source_for(engine).require().cmp(a, b)
    except EngineError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)
    finally:
        engine.close()
    print(result)
