"""File watcher that re-indexes a codebase when its source files change."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import anyio
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from codescope.processor.chunking import is_supported_file
from codescope.utils.path_utils import is_hidden_path

if TYPE_CHECKING:
	from collections.abc import Callable, Coroutine

logger = logging.getLogger(__name__)


class FileChangeHandler(FileSystemEventHandler):
	"""Handles file system events and triggers a debounced callback."""

	def __init__(
		self,
		root: Path,
		callback: Callable[[], Coroutine[None, None, object]],
		loop: asyncio.AbstractEventLoop,
		debounce_delay: float = 2.0,
	) -> None:
		"""
		Initialize the handler.

		Args:
		    root: Watched codebase root.
		    callback: Coroutine function run once changes settle.
		    loop: Event loop the callback runs on. Events arrive on the observer thread.
		    debounce_delay: Quiet period (seconds) before the callback fires.

		"""
		self.root = root
		self.callback = callback
		self.loop = loop
		self.debounce_delay = debounce_delay
		self._debounce_task: asyncio.Task | None = None

	def is_relevant(self, path: str | bytes) -> bool:
		"""Whether a changed path belongs to an indexable source file."""
		if isinstance(path, bytes):
			path = path.decode(errors="replace")
		candidate = Path(path)
		try:
			relative = candidate.relative_to(self.root)
		except ValueError:
			return False
		return not is_hidden_path(relative) and is_supported_file(candidate)

	def _schedule_callback(self) -> None:
		"""Restart the debounce timer. Runs on the event loop."""
		if self._debounce_task and not self._debounce_task.done():
			self._debounce_task.cancel()
			logger.debug("Restarting debounce timer")
		self._debounce_task = self.loop.create_task(self._debounced_callback())

	async def _debounced_callback(self) -> None:
		"""Sleep through the quiet period, then run the callback once."""
		try:
			await asyncio.sleep(self.debounce_delay)
			logger.info(f"Changes settled in {self.root}, re-indexing")
			await self.callback()
		except asyncio.CancelledError:
			logger.debug("Debounce timer superseded")
		except Exception:
			logger.exception("Re-index triggered by file changes failed")

	def on_any_event(self, event: FileSystemEvent) -> None:
		"""
		Schedule the callback for changes to source files.

		Args:
		    event: Event delivered by the watchdog observer.

		"""
		if event.is_directory or event.event_type in {"opened", "closed", "closed_no_write"}:
			return
		paths = [event.src_path]
		if event.event_type == "moved":
			paths.append(event.dest_path)
		if not any(self.is_relevant(path) for path in paths):
			return
		logger.debug(f"Detected file {event.event_type}: {' -> '.join(map(str, paths))}")
		self.loop.call_soon_threadsafe(self._schedule_callback)


class Watcher:
	"""Monitors a codebase directory and triggers a callback on changes."""

	def __init__(
		self,
		path_to_watch: str | Path,
		on_change_callback: Callable[[], Coroutine[None, None, object]],
		debounce_delay: float = 2.0,
	) -> None:
		"""
		Initialize the watcher.

		Args:
		    path_to_watch: Codebase root to observe recursively.
		    on_change_callback: Coroutine function run after a burst of changes.
		    debounce_delay: Quiet period in seconds before the callback runs.

		Raises:
		    ValueError: If the path is not a directory.

		"""
		self.path_to_watch = Path(path_to_watch).resolve()
		if not self.path_to_watch.is_dir():
			msg = f"Path to watch must be a directory: {self.path_to_watch}"
			raise ValueError(msg)
		self.on_change_callback = on_change_callback
		self.debounce_delay = debounce_delay
		self.observer = Observer()
		self.event_handler: FileChangeHandler | None = None
		self._stop_event = anyio.Event()

	async def start(self) -> None:
		"""Start monitoring and block until :meth:`stop` is called."""
		self.event_handler = FileChangeHandler(
			self.path_to_watch,
			self.on_change_callback,
			asyncio.get_running_loop(),
			self.debounce_delay,
		)
		self.observer.schedule(self.event_handler, str(self.path_to_watch), recursive=True)
		self.observer.start()
		logger.info(f"Watching {self.path_to_watch} for source changes")
		try:
			await self._stop_event.wait()
		finally:
			self.stop()

	def stop(self) -> None:
		"""Stop the observer and release :meth:`start`."""
		if self.observer.is_alive():
			self.observer.stop()
			self.observer.join()
			logger.info(f"Stopped watching {self.path_to_watch}")
		self._stop_event.set()
