"""Path helpers shared by the snapshot manager, sync coordinator and watcher."""

from __future__ import annotations

from pathlib import Path

SKIP_DIRECTORIES = frozenset({".git", "node_modules", "target", "__pycache__", ".venv", "venv"})


def canonical_key(root: str | Path) -> str:
	"""Return the canonical absolute path used to key per-codebase state."""
	return str(Path(root).expanduser().resolve())


def is_skipped_directory(name: str) -> bool:
	"""Whether a directory with this name is never scanned."""
	return name in SKIP_DIRECTORIES or name.startswith(".")


def is_hidden_path(relative: Path) -> bool:
	"""Whether any component of a relative path is skipped or hidden."""
	parts = relative.parts
	return any(is_skipped_directory(part) for part in parts[:-1]) or (bool(parts) and parts[-1].startswith("."))
