"""
Codebase snapshots for incremental sync.

A snapshot records size, modification time and optionally a SHA-256 digest
for every recognized source file under a root. Diffing the last committed
snapshot against a fresh one yields the files to (re)index.

Committed snapshots are stored as JSON under ``<data_dir>/snapshots``, one
file per codebase, together with the vector ids stored for each file.

"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from codescope.errors import NotFoundError
from codescope.processor.chunking.languages import is_supported_file
from codescope.processor.models import CodebaseSnapshot, FileSnapshot, SnapshotChanges
from codescope.utils.path_utils import canonical_key, is_skipped_directory

if TYPE_CHECKING:
	from collections.abc import Iterable

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT_VERSION = "1.0"
HASH_CHUNK_SIZE = 1 << 16
READ_ATTEMPTS = 2


def hash_file(path: Path) -> str:
	"""SHA-256 hex digest of a file's content."""
	digest = hashlib.sha256()
	with path.open("rb") as f:
		for block in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
			digest.update(block)
	return digest.hexdigest()


def _is_modified(previous: FileSnapshot, current: FileSnapshot) -> bool:
	if previous.modified_time != current.modified_time or previous.size != current.size:
		return True
	if previous.content_hash is not None and current.content_hash is not None:
		return previous.content_hash != current.content_hash
	return False


class SnapshotManager:
	"""Take, compare and persist codebase snapshots."""

	def __init__(self, data_dir: Path | None = None, use_content_hash: bool = False) -> None:
		"""
		Initialize the manager.

		Args:
		    data_dir: Directory for committed snapshots. When None, snapshots are
		        kept in memory for the lifetime of the manager.
		    use_content_hash: Record SHA-256 digests in addition to mtimes.

		"""
		self.snapshot_dir = data_dir / "snapshots" if data_dir is not None else None
		self.use_content_hash = use_content_hash
		self._memory: dict[str, dict[str, Any]] = {}

	def snapshot(self, root: str | Path) -> CodebaseSnapshot:
		"""
		Scan a codebase.

		Args:
		    root: Codebase root directory.

		Returns:
		    Snapshot of every recognized source file. Unsupported files are
		    listed in ``skipped``, unreadable source files in ``unreadable``.

		Raises:
		    NotFoundError: If ``root`` is not an existing directory.

		"""
		root_path = Path(root).expanduser()
		if not root_path.is_dir():
			msg = f"Codebase path does not exist or is not a directory: {root}"
			raise NotFoundError(msg)
		root_path = root_path.resolve()

		files: dict[str, FileSnapshot] = {}
		skipped: set[str] = set()
		unreadable: set[str] = set()
		visited: set[str] = set()

		for dirpath, dirnames, filenames in os.walk(root_path, followlinks=True, onerror=self._on_walk_error):
			real = os.path.realpath(dirpath)
			if real in visited:
				logger.debug(f"Skipping already visited directory {dirpath}")
				dirnames[:] = []
				continue
			visited.add(real)
			dirnames[:] = sorted(name for name in dirnames if not is_skipped_directory(name))

			for name in sorted(filenames):
				if name.startswith("."):
					continue
				path = Path(dirpath) / name
				relative = path.relative_to(root_path).as_posix()
				if not is_supported_file(name):
					skipped.add(relative)
					continue
				entry = self._snapshot_file(path, relative)
				if entry is None:
					unreadable.add(relative)
				else:
					files[relative] = entry

		logger.debug(
			f"Snapshot of {root_path}: {len(files)} source files, {len(skipped)} skipped, {len(unreadable)} unreadable"
		)
		return CodebaseSnapshot(root=str(root_path), files=files, skipped=skipped, unreadable=unreadable)

	@staticmethod
	def _on_walk_error(error: OSError) -> None:
		logger.warning(f"Cannot scan {error.filename}: {error.strerror}")

	def _snapshot_file(self, path: Path, relative: str) -> FileSnapshot | None:
		"""Stat (and optionally hash) a file, retrying once on I/O errors."""
		last_error: OSError | None = None
		for _ in range(READ_ATTEMPTS):
			try:
				stat = path.stat()
				digest = hash_file(path) if self.use_content_hash else None
				return FileSnapshot(path=relative, size=stat.st_size, modified_time=stat.st_mtime, content_hash=digest)
			except OSError as e:
				last_error = e
		logger.warning(f"Skipping unreadable file {relative}: {last_error}")
		return None

	@staticmethod
	def diff(previous: CodebaseSnapshot | None, current: CodebaseSnapshot) -> SnapshotChanges:
		"""
		Compare two snapshots of the same codebase.

		Args:
		    previous: Last committed snapshot, or None for a first sync.
		    current: Fresh snapshot.

		Files that could not be read in ``current`` are neither removed nor
		modified; they are compared again on the next scan.

		Returns:
		    Added, modified and removed relative paths.

		"""
		previous_files = previous.files if previous is not None else {}
		current_paths = current.files.keys()
		previous_paths = previous_files.keys()
		return SnapshotChanges(
			added=frozenset(current_paths - previous_paths),
			removed=frozenset(previous_paths - current_paths - current.unreadable),
			modified=frozenset(
				path
				for path in current_paths & previous_paths
				if _is_modified(previous_files[path], current.files[path])
			),
		)

	def get_changed_files(self, root: str | Path, collection: str | None = None) -> list[str]:
		"""Relative paths of files added or modified since the last commit, sorted."""
		current = self.snapshot(root)
		changes = self.diff(self.load(root, collection), current)
		return sorted(changes.changed)

	def _record_path(self, key: str) -> Path | None:
		if self.snapshot_dir is None:
			return None
		name = hashlib.sha256(key.encode("utf-8")).hexdigest()
		return self.snapshot_dir / f"{name}.json"

	def load(self, root: str | Path, collection: str | None = None) -> CodebaseSnapshot | None:
		"""
		Load the last committed snapshot of a codebase.

		Args:
		    root: Codebase root.
		    collection: When given, a snapshot committed for another collection is ignored.

		Returns:
		    The snapshot, or None if there is no usable record.

		"""
		key = canonical_key(root)
		record_path = self._record_path(key)
		if record_path is None:
			record = self._memory.get(key)
		else:
			try:
				record = json.loads(record_path.read_text(encoding="utf-8"))
			except FileNotFoundError:
				return None
			except (OSError, ValueError) as e:
				logger.warning(f"Ignoring unreadable snapshot for {key}: {e}")
				return None

		if record is None:
			return None
		if not self._is_compatible(record):
			logger.warning(f"Ignoring snapshot for {key} with unsupported version {record.get('version')!r}")
			return None
		if collection is not None and record.get("collection") != collection:
			return None
		return self._from_record(record)

	@staticmethod
	def _is_compatible(record: dict[str, Any]) -> bool:
		version = str(record.get("version", ""))
		return version.split(".", 1)[0] == SNAPSHOT_FORMAT_VERSION.split(".", 1)[0]

	@staticmethod
	def _from_record(record: dict[str, Any]) -> CodebaseSnapshot:
		files = {}
		vector_ids = {}
		for path, entry in record.get("files", {}).items():
			files[path] = FileSnapshot(
				path=path,
				size=int(entry["size"]),
				modified_time=float(entry["modified_time"]),
				content_hash=entry.get("content_hash"),
			)
			vector_ids[path] = list(entry.get("vector_ids", []))
		return CodebaseSnapshot(
			root=record["root"],
			files=files,
			skipped=set(record.get("skipped", [])),
			captured_at=float(record.get("captured_at", 0.0)),
			vector_ids=vector_ids,
		)

	@staticmethod
	def _to_record(snapshot: CodebaseSnapshot, collection: str | None) -> dict[str, Any]:
		return {
			"version": SNAPSHOT_FORMAT_VERSION,
			"root": snapshot.root,
			"collection": collection,
			"captured_at": snapshot.captured_at,
			"skipped": sorted(snapshot.skipped),
			"files": {
				path: {
					"size": entry.size,
					"modified_time": entry.modified_time,
					"content_hash": entry.content_hash,
					"vector_ids": snapshot.vector_ids.get(path, []),
				}
				for path, entry in sorted(snapshot.files.items())
			},
		}

	def save(self, snapshot: CodebaseSnapshot, collection: str | None = None) -> bool:
		"""
		Persist a snapshot. Failures are logged, not raised.

		Returns:
		    Whether the snapshot was written.

		"""
		key = canonical_key(snapshot.root)
		record = self._to_record(snapshot, collection)
		record_path = self._record_path(key)
		if record_path is None:
			self._memory[key] = record
			return True
		try:
			record_path.parent.mkdir(parents=True, exist_ok=True)
			tmp_path = record_path.with_suffix(".tmp")
			tmp_path.write_text(json.dumps(record), encoding="utf-8")
			tmp_path.replace(record_path)
		except OSError as e:
			logger.warning(f"Failed to save snapshot for {key}: {e}")
			return False
		return True

	def commit(
		self,
		current: CodebaseSnapshot,
		previous: CodebaseSnapshot | None,
		failed_paths: Iterable[str] = (),
		vector_ids: dict[str, list[str]] | None = None,
		collection: str | None = None,
	) -> CodebaseSnapshot:
		"""
		Persist the outcome of a sync.

		Files in ``failed_paths`` keep their previous entry (or are left out if
		they are new), so the next diff offers them again. Files that could not
		be read during the scan keep their previous entry and vector ids. Files without new
		vector ids keep the ids of the previous snapshot.

		Args:
		    current: Snapshot taken at the start of the sync.
		    previous: Snapshot the sync was diffed against.
		    failed_paths: Files whose indexing or cleanup failed.
		    vector_ids: Vector ids stored for each file indexed by the sync.
		    collection: Collection the codebase was indexed into.

		Returns:
		    The committed snapshot.

		"""
		failed = set(failed_paths) | current.unreadable
		new_ids = vector_ids or {}
		previous_files = previous.files if previous is not None else {}
		previous_ids = previous.vector_ids if previous is not None else {}

		files: dict[str, FileSnapshot] = {}
		ids: dict[str, list[str]] = {}
		for path in current.files.keys() | failed:
			if path in failed:
				if path in previous_files:
					files[path] = previous_files[path]
					ids[path] = previous_ids.get(path, [])
				continue
			files[path] = current.files[path]
			ids[path] = new_ids[path] if path in new_ids else previous_ids.get(path, [])

		committed = CodebaseSnapshot(
			root=current.root,
			files=files,
			skipped=set(current.skipped),
			captured_at=current.captured_at,
			vector_ids=ids,
		)
		self.save(committed, collection)
		return committed

	def forget(self, root: str | Path) -> None:
		"""Delete the committed snapshot of a codebase."""
		key = canonical_key(root)
		self._memory.pop(key, None)
		record_path = self._record_path(key)
		if record_path is not None:
			record_path.unlink(missing_ok=True)

	def forget_collection(self, collection: str) -> int:
		"""
		Delete every committed snapshot that was indexed into ``collection``.

		Returns:
		    Number of snapshots removed.

		"""
		removed = 0
		for key, record in list(self._memory.items()):
			if record.get("collection") == collection:
				del self._memory[key]
				removed += 1

		if self.snapshot_dir is not None and self.snapshot_dir.is_dir():
			for record_path in self.snapshot_dir.glob("*.json"):
				try:
					record = json.loads(record_path.read_text(encoding="utf-8"))
				except (OSError, ValueError) as e:
					logger.warning(f"Skipping unreadable snapshot {record_path}: {e}")
					continue
				if record.get("collection") == collection:
					record_path.unlink(missing_ok=True)
					removed += 1
		if removed:
			logger.info(f"Forgot {removed} snapshot(s) indexed into '{collection}'")
		return removed
