"""
Chunker facade.

Picks tree-sitter chunking when the language has a grammar and falls back to
pattern-based chunking when parsing is impossible or yields nothing.

"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from codescope.errors import CodeScopeError, InvalidArgumentError, IoError
from codescope.processor.chunking.fallback import GENERIC_BLOCK_PATTERNS, FallbackChunker
from codescope.processor.chunking.languages import (
	DEFAULT_MAX_CHUNK_SIZE,
	DEFAULT_MIN_CHUNK_SIZE,
	detect_language,
	get_language_config,
)
from codescope.processor.chunking.syntax import SyntaxChunker
from codescope.processor.models import CodeChunk, Language

if TYPE_CHECKING:
	from collections.abc import Iterable

logger = logging.getLogger(__name__)

BINARY_SNIFF_BYTES = 8192


@dataclass(frozen=True)
class ChunkingOptions:
	"""Limits applied to every file."""

	min_chunk_size: int | None = None
	"""Minimum characters per chunk; None uses the language default."""

	max_chunk_size: int | None = None
	"""Size above which large nodes are split; None uses the language default."""

	min_lines: int = 2
	"""Minimum lines per chunk."""

	max_chunks_per_file: int = 500
	"""Chunks beyond this count are dropped, keeping source order."""


@dataclass
class ChunkBatchResult:
	"""Per-file outcome of :meth:`CodeChunker.chunk_batch`."""

	chunks: dict[str, list[CodeChunk]] = field(default_factory=dict)
	errors: dict[str, str] = field(default_factory=dict)

	@property
	def total_chunks(self) -> int:
		"""Number of chunks across all files."""
		return sum(len(chunks) for chunks in self.chunks.values())


def is_binary(data: bytes) -> bool:
	"""Whether raw file content looks binary (a NUL byte near the start)."""
	return b"\x00" in data[:BINARY_SNIFF_BYTES]


def read_source(path: Path) -> str:
	"""
	Read a source file as UTF-8 text.

	Args:
	    path: File to read.

	Returns:
	    The decoded text.

	Raises:
	    IoError: If the file cannot be read.
	    InvalidArgumentError: If the file is binary or not valid UTF-8.

	"""
	try:
		data = path.read_bytes()
	except OSError as e:
		msg = f"Cannot read {path}: {e}"
		raise IoError(msg) from e
	if is_binary(data):
		msg = f"{path} is a binary file"
		raise InvalidArgumentError(msg)
	try:
		return data.decode("utf-8")
	except UnicodeDecodeError as e:
		msg = f"{path} is not valid UTF-8"
		raise InvalidArgumentError(msg) from e


class CodeChunker:
	"""Split source files into code chunks."""

	def __init__(self, options: ChunkingOptions | None = None) -> None:
		"""
		Initialize the chunker.

		Args:
		    options: Chunking limits; defaults apply when omitted.

		"""
		self.options = options or ChunkingOptions()
		self._syntax = SyntaxChunker()
		self._fallbacks: dict[Language, FallbackChunker] = {}

	def _fallback_for(self, language: Language) -> FallbackChunker:
		if language not in self._fallbacks:
			config = get_language_config(language)
			if config is None:
				self._fallbacks[language] = FallbackChunker(
					GENERIC_BLOCK_PATTERNS,
					min_chunk_size=self._min_size(DEFAULT_MIN_CHUNK_SIZE),
					min_lines=self.options.min_lines,
				)
			else:
				self._fallbacks[language] = FallbackChunker(
					config.block_patterns,
					indent_based=config.indent_based,
					min_chunk_size=self._min_size(config.min_chunk_size),
					min_lines=self.options.min_lines,
				)
		return self._fallbacks[language]

	def _min_size(self, language_default: int) -> int:
		if self.options.min_chunk_size is None:
			return language_default
		return self.options.min_chunk_size

	def chunk_code(self, content: str, file_name: str, language: Language | None = None) -> list[CodeChunk]:
		"""
		Chunk source text.

		Args:
		    content: Source text.
		    file_name: Relative path used for chunk ids and ``file_path``.
		    language: Language of the text; detected from ``file_name`` when omitted.

		Returns:
		    Chunks in source order, at most ``max_chunks_per_file`` of them.

		"""
		if not content.strip():
			return []
		if language is None:
			language = detect_language(file_name)

		chunks: list[CodeChunk] | None = None
		config = get_language_config(language)
		if config is not None:
			chunks = self._syntax.chunk(
				content,
				file_name,
				config,
				min_chunk_size=self._min_size(config.min_chunk_size),
				max_chunk_size=self.options.max_chunk_size or config.max_chunk_size or DEFAULT_MAX_CHUNK_SIZE,
				min_lines=self.options.min_lines,
			)

		if not chunks:
			logger.debug(f"Using fallback chunking for {file_name}")
			chunks = self._fallback_for(language).chunk(content, file_name, language)

		if len(chunks) > self.options.max_chunks_per_file:
			logger.warning(
				f"{file_name} produced {len(chunks)} chunks, keeping the first {self.options.max_chunks_per_file}"
			)
			chunks = chunks[: self.options.max_chunks_per_file]
		return chunks

	def chunk_file(self, path: Path, root: Path | None = None) -> list[CodeChunk]:
		"""
		Read and chunk one file.

		Args:
		    path: File to chunk.
		    root: Codebase root; chunk paths are made relative to it when given.

		Raises:
		    IoError: If the file cannot be read.
		    InvalidArgumentError: If the file is binary.

		"""
		name = path.relative_to(root).as_posix() if root is not None else path.name
		return self.chunk_code(read_source(path), name, detect_language(path))

	def chunk_batch(self, paths: Iterable[Path], root: Path | None = None) -> ChunkBatchResult:
		"""
		Chunk several files, isolating failures per file.

		Args:
		    paths: Files to chunk.
		    root: Codebase root used for relative chunk paths.

		Returns:
		    Chunks per file and an error message for every file that failed.

		"""
		result = ChunkBatchResult()
		for path in paths:
			key = path.relative_to(root).as_posix() if root is not None else str(path)
			try:
				result.chunks[key] = self.chunk_file(path, root)
			except CodeScopeError as e:
				logger.warning(f"Skipping {key}: {e}")
				result.errors[key] = str(e)
			except Exception as e:
				logger.exception(f"Failed to chunk {key}")
				result.errors[key] = str(e)
		return result
