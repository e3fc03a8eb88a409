"""CLI command for searching an indexed codebase."""

import json
import logging
from typing import Annotated

import asyncer
import typer
from rich.panel import Panel
from rich.syntax import Syntax

from codescope.cli.cli_types import CollectionOpt, JsonFlag, LimitOpt
from codescope.errors import CodeScopeError
from codescope.utils.cli_utils import build_service, console, exit_with_error, loading_spinner

logger = logging.getLogger(__name__)

QueryArg = Annotated[str, typer.Argument(help="Natural-language or keyword query.")]


def register_command(app: typer.Typer) -> None:
	"""Register the search command with the CLI app."""

	@app.command(name="search")
	@asyncer.runnify
	async def search_command(
		ctx: typer.Context,
		query: QueryArg,
		limit: LimitOpt = None,
		collection: CollectionOpt = None,
		as_json: JsonFlag = False,
	) -> None:
		"""Search indexed code with hybrid semantic and keyword ranking."""
		service = build_service(ctx)
		try:
			with loading_spinner("Searching..."):
				results = await service.search_code(query, limit, collection)
		except CodeScopeError as e:
			exit_with_error(e)
		finally:
			await service.close()

		if as_json:
			console.print_json(json.dumps([result.to_dict() for result in results]))
			return
		if not results:
			console.print("[yellow]No results.[/yellow]")
			return

		for rank, result in enumerate(results, start=1):
			language = result.metadata.get("language", "text")
			title = f"{rank}. {result.file_path}:{result.start_line}  [dim]score {result.score:.3f}[/dim]"
			code = Syntax(
				result.content,
				language if language != "unknown" else "text",
				line_numbers=True,
				start_line=result.start_line,
			)
			console.print(Panel(code, title=title, title_align="left"))
