"""Type definitions for CLI parameters."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

CodebaseArg = Annotated[
	Path,
	typer.Argument(
		exists=True,
		file_okay=False,
		dir_okay=True,
		resolve_path=True,
		help="Path to the codebase root",
	),
]

CollectionOpt = Annotated[
	str | None,
	typer.Option(
		"--collection",
		help="Collection name (defaults to vector_store.collection from config)",
	),
]

ForceFlag = Annotated[
	bool,
	typer.Option(
		"--force",
		"-f",
		help="Index even if the codebase was synced within the debounce interval",
	),
]

LimitOpt = Annotated[
	int | None,
	typer.Option(
		"--limit",
		"-n",
		min=1,
		max=1000,
		help="Maximum number of results",
	),
]

JsonFlag = Annotated[
	bool,
	typer.Option(
		"--json",
		help="Print machine-readable JSON",
	),
]
