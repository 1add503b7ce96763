"""vstore CLI: operator console for inspecting and managing local databases."""

from __future__ import annotations

from typing import Optional

import typer

from versionstore.cli import cmp_cmd, delete_cmd, info, open_cmd

app = typer.Typer(
    name="vstore",
    help="vstore CLI: inspect, open, upgrade and delete versioned databases.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    db: str | None = None
    config: str | None = None
    json_output: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        try:
            from importlib.metadata import version

            v = version("versionstore")
        except Exception:
            v = "unknown"
        print(f"vstore {v}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(
        None,
        "--db",
        envvar="VERSIONSTORE_DB",
        help="SQLite catalog file path (default: db_path from --config, else vstore.db)",
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="VERSIONSTORE_CONFIG",
        help="YAML config file path",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all vstore commands."""
    state.db = db
    state.config = config
    state.json_output = json_output
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


app.command(name="list")(info.list_cmd)
app.command(name="info")(info.info_cmd)
app.command(name="open")(open_cmd.open_cmd)
app.command(name="delete")(delete_cmd.delete_cmd)
app.command(name="cmp")(cmp_cmd.cmp_cmd)


def main() -> None:
    """Entry point for the vstore CLI."""
    app()
