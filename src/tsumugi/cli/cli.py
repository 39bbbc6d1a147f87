"""CLI entrypoint: Typer app definition and command registration"""

import logging
from typing import Annotated

import typer

from tsumugi.cli.commands import (
    _settings,
    commit_cmd,
    history_cmd,
    load_cmd,
    render_cmd,
    roundtrip_cmd,
    save_cmd,
)


app = typer.Typer(name="tsumugi", no_args_is_help=True, help="Markdown and ruby-annotated HTML round trips")


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log at DEBUG level")] = False,
    ):
    """Configure logging before any command runs."""
    level = "DEBUG" if verbose else _settings().log_level
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


app.command(name="render")(render_cmd)
app.command(name="commit")(commit_cmd)
app.command(name="roundtrip")(roundtrip_cmd)
app.command(name="load")(load_cmd)
app.command(name="save")(save_cmd)
app.command(name="history")(history_cmd)
