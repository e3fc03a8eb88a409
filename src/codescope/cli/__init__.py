"""Command-line interface package for CodeScope."""

from __future__ import annotations

import datetime
import logging
from pathlib import Path
from typing import Annotated

import typer

from codescope import __version__
from codescope.utils.log_setup import setup_logging

from .index_cmd import register_command as register_index_command
from .search_cmd import register_command as register_search_command
from .serve_cmd import register_command as register_serve_command

logger = logging.getLogger(__name__)

app = typer.Typer(
	help=f"CodeScope - semantic code indexing and hybrid search\n\nVersion: {__version__}",
	no_args_is_help=True,
	context_settings={"help_option_names": ["-h", "--help"]},
)


def _version_callback(value: bool) -> None:
	"""Callback for --version option."""
	if value:
		typer.echo(f"CodeScope version: {__version__}")
		raise typer.Exit


@app.callback(invoke_without_command=True)
def global_options(
	ctx: typer.Context,
	is_verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose logging.")] = False,
	config_file: Annotated[
		Path | None,
		typer.Option("--config", "-c", help="Path to a YAML config file.", dir_okay=False),
	] = None,
	is_output_log: Annotated[
		bool,
		typer.Option("--save-log", help="Enable logging to a file. Logs to logs/codescope_{datetime}.log."),
	] = False,
	_version: Annotated[
		bool | None,
		typer.Option("--version", help="Show version and exit.", callback=_version_callback, is_eager=True),
	] = None,
) -> None:
	"""Global CLI options and logging setup."""
	ctx.obj = {"config_file": config_file, "is_verbose": is_verbose}

	log_file_path: Path | None = None
	if is_output_log:
		current_time = datetime.datetime.now(tz=datetime.UTC).strftime("%Y-%m-%d_%H-%M-%S")
		log_file_path = Path("logs") / f"codescope_{current_time}.log"

	setup_logging(is_verbose=is_verbose, log_file_path=log_file_path)


register_index_command(app)
register_search_command(app)
register_serve_command(app)
