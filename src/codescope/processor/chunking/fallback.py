"""
Pattern-based chunking used when no syntax tree is available.

Blocks start at lines matching a language's block-start patterns. For
brace languages a block ends when its braces balance again; for
indentation languages it ends when a later line dedents back to the level
of the block's first line.

"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from codescope.processor.models import CodeChunk, Language

if TYPE_CHECKING:
	from collections.abc import Iterable

logger = logging.getLogger(__name__)

GENERIC_BLOCK_PATTERNS = (
	r"^(pub(\([^)]*\))?\s+)?(async\s+)?fn\s+\w+",
	r"^(async\s+)?def\s+\w+",
	r"^(export\s+)?(async\s+)?function\s+\w+",
	r"^(export\s+)?(abstract\s+)?class\s+\w+",
	r"^func\s+",
	r"^(interface|struct|enum|trait|impl)\b",
)

# Lines that end an indentation block and belong to it (Ruby ``end``, closing brackets).
_BLOCK_CLOSER = re.compile(r"^(end\b|[}\])])")


class FallbackChunker:
	"""Chunk source text by block-start patterns and brace or indent tracking."""

	def __init__(
		self,
		patterns: Iterable[str],
		indent_based: bool = False,
		min_chunk_size: int = 20,
		min_lines: int = 2,
	) -> None:
		"""
		Initialize the chunker.

		Args:
		    patterns: Regexes matched against each stripped line to detect a block start.
		        Patterns that fail to compile are ignored.
		    indent_based: End blocks on dedent instead of balanced braces.
		    min_chunk_size: Blocks with fewer non-whitespace-trimmed characters are dropped.
		    min_lines: Blocks spanning fewer lines are dropped.

		"""
		self.patterns = self._compile(patterns)
		self.indent_based = indent_based
		self.min_chunk_size = min_chunk_size
		self.min_lines = min_lines

	@staticmethod
	def _compile(patterns: Iterable[str]) -> list[re.Pattern[str]]:
		compiled = []
		for pattern in patterns:
			try:
				compiled.append(re.compile(pattern))
			except re.error as e:
				logger.debug(f"Dropping invalid block pattern {pattern!r}: {e}")
		return compiled

	def is_block_start(self, line: str) -> bool:
		"""Whether a line opens a new block."""
		stripped = line.strip()
		return bool(stripped) and any(pattern.match(stripped) for pattern in self.patterns)

	def chunk(self, content: str, file_name: str, language: Language = Language.UNKNOWN) -> list[CodeChunk]:
		"""
		Split content into chunks.

		Args:
		    content: Source text.
		    file_name: Name used for chunk ids and metadata.
		    language: Language tag stored on every chunk.

		Returns:
		    Chunks in source order.

		"""
		lines = content.splitlines()
		if self.indent_based:
			spans = self._indent_spans(lines)
		else:
			spans = self._brace_spans(lines)

		chunks = []
		for start, end in spans:
			chunk = self._make_chunk(lines, start, end, file_name, language)
			if chunk is not None:
				chunks.append(chunk)
		return chunks

	def _brace_spans(self, lines: list[str]) -> list[tuple[int, int]]:
		"""Return 0-based inclusive line spans of brace-delimited blocks."""
		spans: list[tuple[int, int]] = []
		start: int | None = None
		opened = closed = 0

		for index, line in enumerate(lines):
			if self.is_block_start(line):
				if start is not None:
					spans.append((start, index - 1))
				start = index
				opened = line.count("{")
				closed = line.count("}")
				continue

			if start is None:
				continue

			opened += line.count("{")
			closed += line.count("}")
			if opened > 0 and opened == closed and index - start + 1 > 2:
				spans.append((start, index))
				start = None
				opened = closed = 0

		if start is not None:
			spans.append((start, len(lines) - 1))
		return spans

	def _indent_spans(self, lines: list[str]) -> list[tuple[int, int]]:
		"""Return 0-based inclusive line spans of indentation-delimited blocks."""
		spans: list[tuple[int, int]] = []
		start: int | None = None
		block_indent = 0
		has_body = False

		for index, line in enumerate(lines):
			stripped = line.strip()
			if not stripped:
				continue
			indent = len(line) - len(line.lstrip())
			is_start = self.is_block_start(line)

			if start is not None:
				if indent > block_indent:
					has_body = True
					continue
				if not has_body:
					# Decorators and signatures stack onto the definition below them.
					has_body = not is_start
					continue
				if _BLOCK_CLOSER.match(stripped) and not is_start:
					spans.append((start, index))
					start = None
					continue
				spans.append((start, index - 1))
				start = None

			if is_start:
				start = index
				block_indent = indent
				has_body = False

		if start is not None:
			spans.append((start, len(lines) - 1))
		return spans

	def _make_chunk(
		self, lines: list[str], start: int, end: int, file_name: str, language: Language
	) -> CodeChunk | None:
		while end > start and not lines[end].strip():
			end -= 1
		block = lines[start : end + 1]
		content = "\n".join(block)
		if not content.strip() or len(content.strip()) < self.min_chunk_size:
			return None
		if len(block) < self.min_lines:
			return None

		start_line = start + 1
		end_line = end + 1
		return CodeChunk(
			id=f"{file_name}_{start_line}_{end_line}",
			content=content,
			file_path=file_name,
			start_line=start_line,
			end_line=end_line,
			language=language,
			metadata={"chunk_type": "fallback", "file": file_name},
		)
