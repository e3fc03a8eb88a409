"""CLI commands for long-running modes: the HTTP server and the file watcher."""

import asyncio
import logging
from typing import Annotated

import anyio
import asyncer
import typer

from codescope.cli.cli_types import CodebaseArg, CollectionOpt
from codescope.errors import CodeScopeError
from codescope.utils.cli_utils import build_service, console, exit_with_error

logger = logging.getLogger(__name__)

HostOpt = Annotated[str | None, typer.Option("--host", help="Bind address (overrides server.host).")]
PortOpt = Annotated[int | None, typer.Option("--port", "-p", help="Port (overrides server.port).")]
IntervalOpt = Annotated[
	float | None,
	typer.Option("--interval", help="Seconds between periodic syncs (overrides sync.interval)."),
]


def register_command(app: typer.Typer) -> None:
	"""Register the serve and watch commands with the CLI app."""

	@app.command(name="serve")
	def serve_command(ctx: typer.Context, host: HostOpt = None, port: PortOpt = None) -> None:
		"""Serve the index, search, status and clear operations over HTTP."""
		from codescope.api_server import APIServer

		service = build_service(ctx)
		server = APIServer(
			service,
			host=host or service.config.server.host,
			port=port or service.config.server.port,
		)
		console.print(f"Serving on http://{server.host}:{server.port}")
		server.serve()

	@app.command(name="watch")
	@asyncer.runnify
	async def watch_command(
		ctx: typer.Context,
		path: CodebaseArg,
		collection: CollectionOpt = None,
		interval: IntervalOpt = None,
	) -> None:
		"""Keep a codebase indexed: re-index on file changes and on a fixed interval."""
		from codescope.watcher import Watcher

		service = build_service(ctx)
		stop_event = asyncio.Event()

		async def on_change() -> None:
			try:
				result = await service.index_codebase(path, collection, force=True)
			except CodeScopeError:
				logger.exception(f"Re-indexing {path} failed")
				return
			if result.performed:
				console.print(f"Re-indexed {result.files_changed} file(s), {result.chunks_indexed} chunk(s)")

		try:
			watcher = Watcher(path, on_change, debounce_delay=service.config.sync.watch_debounce)
		except ValueError as e:
			await service.close()
			exit_with_error(e)

		console.print(f"Watching {path} (Ctrl+C to stop)")
		try:
			async with anyio.create_task_group() as tg:
				tg.start_soon(watcher.start)
				tg.start_soon(service.run_periodic_sync, path, interval, collection, stop_event)
		finally:
			stop_event.set()
			watcher.stop()
			await service.close()
