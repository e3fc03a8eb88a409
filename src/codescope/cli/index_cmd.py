"""CLI commands that build, inspect and clear an index."""

import json
import logging
from typing import Annotated

import asyncer
import typer
from rich.table import Table

from codescope.cli.cli_types import CodebaseArg, CollectionOpt, ForceFlag, JsonFlag
from codescope.errors import CodeScopeError
from codescope.utils.cli_utils import build_service, console, exit_with_error, loading_spinner

logger = logging.getLogger(__name__)

YesFlag = Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")]


def register_command(app: typer.Typer) -> None:
	"""Register the index, status and clear commands with the CLI app."""

	@app.command(name="index")
	@asyncer.runnify
	async def index_command(
		ctx: typer.Context,
		path: CodebaseArg,
		collection: CollectionOpt = None,
		force: ForceFlag = False,
	) -> None:
		"""Index the changed source files of a codebase."""
		service = build_service(ctx)
		try:
			with loading_spinner(f"Indexing {path}..."):
				result = await service.index_codebase(path, collection, force=force)
		except CodeScopeError as e:
			exit_with_error(e)
		finally:
			await service.close()

		if not result.performed:
			console.print(f"[yellow]Skipped:[/yellow] {result.skipped_reason}")
			return
		console.print(
			f"[green]Indexed[/green] {result.files_changed} changed file(s), "
			f"{result.chunks_indexed} chunk(s), {result.failures} failure(s)"
		)
		if result.cancelled:
			console.print("[yellow]Sync was cancelled before it finished.[/yellow]")

	@app.command(name="status")
	@asyncer.runnify
	async def status_command(
		ctx: typer.Context,
		collection: CollectionOpt = None,
		as_json: JsonFlag = False,
	) -> None:
		"""Show index size, counters and running syncs."""
		service = build_service(ctx)
		try:
			status = await service.get_indexing_status(collection)
		except CodeScopeError as e:
			exit_with_error(e)
		finally:
			await service.close()

		if as_json:
			console.print_json(json.dumps(status))
			return

		table = Table(title=f"Collection '{status['collection']}'", show_header=False)
		table.add_column("Field", style="cyan")
		table.add_column("Value")
		table.add_row("exists", str(status["exists"]))
		table.add_row("vectors", str(status["vector_count"]))
		table.add_row("keyword documents", str(status["lexical_index"]["total_documents"]))
		table.add_row("embedding", f"{status['embedding']['provider']} ({status['embedding']['model']})")
		table.add_row("running syncs", str(len(status["active_syncs"])))
		for name, value in status["counters"].items():
			table.add_row(name, str(value))
		console.print(table)

	@app.command(name="clear")
	@asyncer.runnify
	async def clear_command(
		ctx: typer.Context,
		collection: CollectionOpt = None,
		yes: YesFlag = False,
	) -> None:
		"""Delete a collection and forget the snapshots of codebases indexed into it."""
		service = build_service(ctx)
		name = collection or service.default_collection
		if not yes and not typer.confirm(f"Delete collection '{name}'?"):
			await service.close()
			raise typer.Abort
		try:
			existed = await service.clear_index(name)
		except CodeScopeError as e:
			exit_with_error(e)
		finally:
			await service.close()

		if existed:
			console.print(f"[green]Cleared[/green] collection '{name}'")
		else:
			console.print(f"Collection '{name}' did not exist")
