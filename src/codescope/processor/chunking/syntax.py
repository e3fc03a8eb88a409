"""Syntax-based code chunking using tree-sitter."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from tree_sitter import Node, Parser
from tree_sitter_language_pack import get_language

from codescope.processor.models import CodeChunk

if TYPE_CHECKING:
	from codescope.processor.chunking.languages import LanguageConfig

logger = logging.getLogger(__name__)

SYMBOL_NODE_TYPES = frozenset({"identifier", "field_identifier", "type_identifier", "constant", "name", "variable"})
MAX_SYMBOL_DEPTH = 3


class SyntaxChunker:
	"""Emit one chunk per syntax node whose type the language marks as a chunk."""

	def __init__(self) -> None:
		"""Initialize the chunker. Parsers are loaded on first use per grammar."""
		self._parsers: dict[str, Parser | None] = {}
		self._lock = threading.Lock()

	def _get_parser(self, grammar: str) -> Parser | None:
		"""
		Get the parser for a grammar.

		Args:
		    grammar: Grammar name in tree-sitter-language-pack

		Returns:
		    A tree-sitter parser, or None if the grammar cannot be loaded

		"""
		if grammar not in self._parsers:
			try:
				parser = Parser()
				parser.language = get_language(grammar)
				self._parsers[grammar] = parser
			except Exception:
				# The language pack raises its own error types for missing or undownloadable grammars.
				logger.exception(f"Failed to load tree-sitter grammar {grammar}; using fallback chunking")
				self._parsers[grammar] = None
		return self._parsers[grammar]

	def chunk(
		self,
		content: str,
		file_name: str,
		config: LanguageConfig,
		min_chunk_size: int,
		max_chunk_size: int,
		min_lines: int,
	) -> list[CodeChunk] | None:
		"""
		Chunk source text along syntax node boundaries.

		Matching nodes are emitted whole. A matching node larger than
		``max_chunk_size`` is also searched for matching children, so large
		classes yield their methods as well.

		Args:
		    content: Source text
		    file_name: Name used for chunk ids and ``file_path``
		    config: Rules for the file's language
		    min_chunk_size: Minimum number of characters in a chunk
		    max_chunk_size: Size above which matching children are also emitted
		    min_lines: Minimum number of lines in a chunk

		Returns:
		    Chunks in source order, or None when the source could not be parsed

		"""
		source = content.encode("utf-8")
		with self._lock:
			parser = self._get_parser(config.grammar_for(file_name))
			if parser is None:
				return None
			try:
				tree = parser.parse(source)
			except (ValueError, RuntimeError) as e:
				logger.warning(f"Failed to parse {file_name}: {e}")
				return None

		chunks: list[CodeChunk] = []
		stack: list[Node] = [tree.root_node]
		while stack:
			node = stack.pop()
			descend = True
			if node.type in config.node_kinds:
				chunk = self._make_chunk(node, source, file_name, config, min_chunk_size, min_lines)
				if chunk is not None:
					chunks.append(chunk)
				descend = node.end_byte - node.start_byte > max_chunk_size
			if descend:
				stack.extend(reversed(node.children))

		chunks.sort(key=lambda c: (c.start_line, -c.end_line))
		return chunks

	@staticmethod
	def _make_chunk(
		node: Node,
		source: bytes,
		file_name: str,
		config: LanguageConfig,
		min_chunk_size: int,
		min_lines: int,
	) -> CodeChunk | None:
		content = source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")
		if not content.strip() or len(content.strip()) < min_chunk_size:
			return None

		start_line = node.start_point[0] + 1
		end_row, end_col = node.end_point
		# A node ending right after a newline stops on the previous line.
		end_line = end_row if end_col == 0 and end_row > node.start_point[0] else end_row + 1
		if end_line - start_line + 1 < min_lines:
			return None

		metadata = {"chunk_type": "ast", "node_kind": node.type, "file": file_name}
		symbol = _symbol_name(node)
		if symbol:
			metadata["symbol"] = symbol

		return CodeChunk(
			id=f"{node.type}_{file_name}_{start_line}_{end_line}",
			content=content,
			file_path=file_name,
			start_line=start_line,
			end_line=end_line,
			language=config.language,
			metadata=metadata,
		)


def _node_text(node: Node) -> str | None:
	if node.text is None:
		return None
	return node.text.decode("utf-8", errors="replace")


def _symbol_name(node: Node, depth: int = 0) -> str | None:
	"""Find the declared name of a node, looking through declarators and wrappers."""
	if depth > MAX_SYMBOL_DEPTH:
		return None
	name = node.child_by_field_name("name")
	if name is not None:
		return _node_text(name)
	for field_name in ("declarator", "definition"):
		child = node.child_by_field_name(field_name)
		if child is None:
			continue
		if child.type in SYMBOL_NODE_TYPES:
			return _node_text(child)
		found = _symbol_name(child, depth + 1)
		if found:
			return found
	return None
