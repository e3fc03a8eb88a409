"""
Logging setup for CodeScope.

Console records go to stderr through rich so they never mix with command
output such as ``--json``. A log file, when requested, records everything at
DEBUG regardless of the console level.

"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.rule import Rule
from rich.text import Text

console = Console(stderr=True)

FILE_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s"
THIRD_PARTY_LOGGERS = ("httpx", "LiteLLM", "sentence_transformers", "watchdog")


def _console_handler(level: int, is_verbose: bool) -> logging.Handler:
	return RichHandler(
		level=level,
		console=console,
		rich_tracebacks=True,
		show_time=True,
		show_path=is_verbose,
	)


def _file_handler(log_file_path: Path) -> logging.Handler:
	log_file_path.parent.mkdir(parents=True, exist_ok=True)
	handler = logging.FileHandler(log_file_path, mode="a", encoding="utf-8")
	handler.setLevel(logging.DEBUG)
	handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
	return handler


def setup_logging(
	is_verbose: bool = False,
	log_to_console: bool = True,
	log_file_path: Path | str | None = None,
) -> None:
	"""
	Configure the root logger.

	Replaces any handlers installed by an earlier call.

	Args:
	    is_verbose: Log DEBUG to the console instead of WARNING.
	    log_to_console: Whether to attach the rich console handler.
	    log_file_path: Optional file that receives every record.

	"""
	console_level = logging.DEBUG if is_verbose else logging.WARNING
	root_logger = logging.getLogger()
	for handler in root_logger.handlers[:]:
		root_logger.removeHandler(handler)

	handlers: list[logging.Handler] = []
	if log_to_console:
		handlers.append(_console_handler(console_level, is_verbose))
	if log_file_path:
		try:
			handlers.append(_file_handler(Path(log_file_path)))
		except OSError as e:
			console.print(f"[bold red]Could not open log file {log_file_path}: {e}[/bold red]")
			log_file_path = None

	root_logger.setLevel(logging.DEBUG if log_file_path else console_level)
	for handler in handlers:
		root_logger.addHandler(handler)
	if log_file_path:
		root_logger.debug(f"Logging to file: {log_file_path}")

	for name in THIRD_PARTY_LOGGERS:
		logging.getLogger(name).setLevel(max(console_level, logging.WARNING))


def display_error_summary(error_message: str) -> None:
	"""Print an error between two red rules."""
	console.print()
	console.print(Rule(Text("Error Summary", style="bold red"), style="red"))
	console.print(f"\n{error_message}\n")
	console.print(Rule(style="red"))
	console.print()
