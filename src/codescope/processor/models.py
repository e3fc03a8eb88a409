"""
Core data structures shared by the indexing and query pipelines.

This module defines the value types that flow between CodeScope components:
- Code chunks and the languages they are written in
- Embeddings returned by providers
- File and codebase snapshots used for incremental sync
- Sync batches, search results and indexing results

"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def lexical_key(file_path: str, start_line: int, codebase: str = "") -> str:
	"""
	Lexical index key of a chunk.

	``<file_path>:<start_line>``, prefixed with ``<codebase>::`` when the chunk
	is tied to a codebase root so codebases sharing a collection never collide.

	"""
	key = f"{file_path}:{start_line}"
	return f"{codebase}::{key}" if codebase else key


class Language(str, Enum):
	"""Programming languages known to the chunker."""

	RUST = "rust"
	PYTHON = "python"
	JAVASCRIPT = "javascript"
	TYPESCRIPT = "typescript"
	GO = "go"
	JAVA = "java"
	C = "c"
	CPP = "cpp"
	CSHARP = "csharp"
	RUBY = "ruby"
	PHP = "php"
	SWIFT = "swift"
	KOTLIN = "kotlin"
	SCALA = "scala"
	HASKELL = "haskell"
	UNKNOWN = "unknown"


@dataclass(frozen=True)
class CodeChunk:
	"""
	A contiguous span of source lines treated as one retrievable unit.

	Chunks are produced by the chunker, embedded in batches, stored in the
	vector store and indexed by the lexical index.

	"""

	id: str
	"""Deterministic identifier derived from the file name and line range."""

	content: str
	"""Source text of the chunk. Never empty."""

	file_path: str
	"""Path of the source file, relative to the codebase root."""

	start_line: int
	"""1-based line number where the chunk starts."""

	end_line: int
	"""1-based line number where the chunk ends (inclusive)."""

	language: Language
	"""Language the chunk is written in."""

	metadata: dict[str, Any] = field(default_factory=dict, compare=False)
	"""Chunker metadata such as ``chunk_type``, ``node_kind`` and ``symbol``."""

	def __post_init__(self) -> None:
		"""Validate line numbers and content."""
		if not self.content:
			msg = f"Chunk {self.id!r} has empty content"
			raise ValueError(msg)
		if self.start_line < 1:
			msg = f"Chunk {self.id!r} starts at line {self.start_line}, expected >= 1"
			raise ValueError(msg)
		if self.end_line < self.start_line:
			msg = f"Chunk {self.id!r} ends at line {self.end_line} before it starts at {self.start_line}"
			raise ValueError(msg)

	@property
	def codebase(self) -> str:
		"""Root of the codebase the chunk was indexed from, or an empty string."""
		return str(self.metadata.get("codebase", ""))

	@property
	def key(self) -> str:
		"""Lexical index key, see :func:`lexical_key`."""
		return lexical_key(self.file_path, self.start_line, self.codebase)

	def to_metadata(self) -> dict[str, Any]:
		"""Build the metadata record stored next to the chunk's vector."""
		return {
			**self.metadata,
			"chunk_id": self.id,
			"content": self.content,
			"file_path": self.file_path,
			"start_line": self.start_line,
			"end_line": self.end_line,
			"language": self.language.value,
		}


@dataclass(frozen=True)
class Embedding:
	"""A fixed-length vector for one piece of text."""

	vector: list[float]
	model: str
	dimensions: int

	def __post_init__(self) -> None:
		"""Validate that the vector is non-empty and matches ``dimensions``."""
		if not self.vector:
			msg = "Embedding vector must not be empty"
			raise ValueError(msg)
		if not self.model:
			msg = "Embedding model name must not be empty"
			raise ValueError(msg)
		if self.dimensions != len(self.vector):
			msg = f"Embedding declares {self.dimensions} dimensions but has {len(self.vector)} values"
			raise ValueError(msg)


@dataclass(frozen=True)
class FileSnapshot:
	"""Metadata recorded for one file during a snapshot."""

	path: str
	"""Path relative to the codebase root, using forward slashes."""

	size: int
	"""File size in bytes."""

	modified_time: float
	"""Modification time as a POSIX timestamp."""

	content_hash: str | None = None
	"""SHA-256 hex digest of the content, when content hashing is enabled."""


@dataclass
class CodebaseSnapshot:
	"""
	Point-in-time record of a codebase's source files.

	``captured_at`` and ``vector_ids`` do not take part in equality, so two
	scans of an unchanged tree compare equal.

	"""

	root: str
	"""Canonical absolute path of the codebase root."""

	files: dict[str, FileSnapshot] = field(default_factory=dict)
	"""Recognized source files keyed by relative path."""

	skipped: set[str] = field(default_factory=set)
	"""Files that were seen but not indexed because their language is unknown."""

	unreadable: set[str] = field(default_factory=set, compare=False)
	"""Source files that could not be stat'ed or read during this scan."""

	captured_at: float = field(default_factory=time.time, compare=False)
	"""When the snapshot was taken."""

	vector_ids: dict[str, list[str]] = field(default_factory=dict, compare=False)
	"""Vector ids stored for each file during the sync that produced this snapshot."""


@dataclass(frozen=True)
class SnapshotChanges:
	"""Result of diffing two snapshots."""

	added: frozenset[str] = frozenset()
	modified: frozenset[str] = frozenset()
	removed: frozenset[str] = frozenset()

	@property
	def changed(self) -> frozenset[str]:
		"""Files that need to be (re)indexed."""
		return self.added | self.modified

	@property
	def is_empty(self) -> bool:
		"""Whether nothing was added, modified or removed."""
		return not (self.added or self.modified or self.removed)


@dataclass
class SyncBatch:
	"""The single-flight token held for one indexing run of a codebase."""

	codebase_key: str
	id: str = field(default_factory=lambda: uuid.uuid4().hex)
	created_at: float = field(default_factory=time.time)
	cancel_event: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)

	@property
	def cancelled(self) -> bool:
		"""Whether cancellation was requested for this run."""
		return self.cancel_event.is_set()

	def cancel(self) -> None:
		"""Request that the run stops at its next suspension point."""
		self.cancel_event.set()


@dataclass
class SearchResult:
	"""One ranked match returned to callers."""

	id: str
	file_path: str
	start_line: int
	content: str
	score: float
	metadata: dict[str, Any] = field(default_factory=dict)

	@property
	def key(self) -> str:
		"""Lexical index key of the chunk this result points at."""
		return lexical_key(self.file_path, self.start_line, str(self.metadata.get("codebase", "")))

	@classmethod
	def from_metadata(cls, result_id: str, score: float, metadata: dict[str, Any] | None) -> SearchResult:
		"""
		Build a result from a vector store record, tolerating missing fields.

		Args:
		    result_id: Vector id assigned by the store.
		    score: Similarity score reported by the store.
		    metadata: Metadata stored alongside the vector.

		Returns:
		    SearchResult with ``file_path``, ``start_line`` and ``content`` taken
		    from the metadata, or empty defaults when they are absent.

		"""
		metadata = dict(metadata or {})
		try:
			start_line = int(metadata.get("start_line", 0))
		except (TypeError, ValueError):
			start_line = 0
		return cls(
			id=str(result_id),
			file_path=str(metadata.get("file_path", "")),
			start_line=start_line,
			content=str(metadata.get("content", "")),
			score=float(score),
			metadata=metadata,
		)

	def to_dict(self) -> dict[str, Any]:
		"""Serialize the result for transports."""
		return {
			"id": self.id,
			"file_path": self.file_path,
			"start_line": self.start_line,
			"content": self.content,
			"score": self.score,
			"metadata": self.metadata,
		}


@dataclass
class HybridSearchResult:
	"""A semantic candidate annotated with its lexical and fused scores."""

	result: SearchResult
	bm25_score: float
	semantic_score: float
	hybrid_score: float


@dataclass
class IndexingResult:
	"""Outcome of one ``index_codebase`` call."""

	performed: bool
	files_changed: int = 0
	chunks_indexed: int = 0
	failures: int = 0
	skipped_reason: str | None = None
	cancelled: bool = False

	def to_dict(self) -> dict[str, Any]:
		"""Serialize the result for transports."""
		return {
			"performed": self.performed,
			"files_changed": self.files_changed,
			"chunks_indexed": self.chunks_indexed,
			"failures": self.failures,
			"skipped_reason": self.skipped_reason,
			"cancelled": self.cancelled,
		}
