"""Utility functions for CLI operations in CodeScope."""

from __future__ import annotations

import contextlib
import os
from typing import TYPE_CHECKING, NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from codescope.utils.log_setup import display_error_summary

if TYPE_CHECKING:
	from collections.abc import Iterator

	from codescope.service import CodeSearchService

console = Console()


@contextlib.contextmanager
def loading_spinner(message: str = "Processing...") -> Iterator[None]:
	"""
	Display a loading spinner while executing a task.

	Args:
	    message: Message to display alongside the spinner

	Yields:
	    None

	"""
	if os.environ.get("PYTEST_CURRENT_TEST") or os.environ.get("CI"):
		yield
		return
	with console.status(message):
		yield


def exit_with_error(error: Exception) -> NoReturn:
	"""
	Show an error summary and exit with status 1.

	Args:
	    error: The error to report.

	Raises:
	    typer.Exit: Always.

	"""
	kind = getattr(error, "kind", None)
	display_error_summary(escape(f"{kind}: {error}" if kind else str(error)))
	raise typer.Exit(1) from error


def build_service(ctx: typer.Context) -> CodeSearchService:
	"""
	Build a service from the config file given to the global ``--config`` option.

	Raises:
	    typer.Exit: If the configuration cannot be loaded.

	"""
	from codescope.errors import CodeScopeError
	from codescope.service import CodeSearchService

	config_file = (ctx.obj or {}).get("config_file")
	try:
		return CodeSearchService.from_config_file(config_file)
	except CodeScopeError as e:
		exit_with_error(e)
