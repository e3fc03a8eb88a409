"""Tests for the pattern-based fallback chunker."""

import pytest

from codescope.processor.chunking.fallback import GENERIC_BLOCK_PATTERNS, FallbackChunker
from codescope.processor.chunking.languages import LANGUAGE_CONFIGS
from codescope.processor.models import Language

RUST_PATTERNS = LANGUAGE_CONFIGS[Language.RUST].block_patterns
PYTHON_PATTERNS = LANGUAGE_CONFIGS[Language.PYTHON].block_patterns
RUBY_PATTERNS = LANGUAGE_CONFIGS[Language.RUBY].block_patterns

RUST_SOURCE = """fn alpha() {
    let x = 1;
    x + 1
}
fn beta() {
    let y = 2;
}
"""


@pytest.mark.unit
class TestBraceBlocks:
	"""Tests for brace-balanced blocks."""

	def test_blocks_close_when_braces_balance(self) -> None:
		"""Each function becomes one chunk ending at its closing brace."""
		chunker = FallbackChunker(RUST_PATTERNS, min_chunk_size=0)

		chunks = chunker.chunk(RUST_SOURCE, "lib.rs", Language.RUST)

		assert [(c.start_line, c.end_line) for c in chunks] == [(1, 4), (5, 7)]
		assert chunks[0].id == "lib.rs_1_4"
		assert chunks[0].content.startswith("fn alpha()")
		assert chunks[1].content.endswith("}")
		assert all(c.metadata == {"chunk_type": "fallback", "file": "lib.rs"} for c in chunks)
		assert all(c.language is Language.RUST for c in chunks)

	def test_next_block_start_flushes_current(self) -> None:
		"""A block start closes a block whose braces balanced within two lines."""
		chunker = FallbackChunker(RUST_PATTERNS, min_chunk_size=0, min_lines=1)

		chunks = chunker.chunk("fn foo() { }\nfn bar() { }\n", "a.rs")

		assert [(c.start_line, c.end_line) for c in chunks] == [(1, 1), (2, 2)]

	def test_min_lines_drops_single_line_blocks(self) -> None:
		"""Blocks shorter than min_lines are dropped."""
		chunker = FallbackChunker(RUST_PATTERNS, min_chunk_size=0, min_lines=2)

		assert chunker.chunk("fn foo() { }\nfn bar() { }\n", "a.rs") == []

	def test_min_chunk_size_drops_small_blocks(self) -> None:
		"""Blocks with fewer characters than the minimum are dropped."""
		chunker = FallbackChunker(RUST_PATTERNS, min_chunk_size=1000)

		assert chunker.chunk(RUST_SOURCE, "lib.rs") == []

	def test_unterminated_block_runs_to_end_of_file(self) -> None:
		"""A block that never balances is emitted at end of file."""
		chunker = FallbackChunker(RUST_PATTERNS, min_chunk_size=0)
		source = "fn open() {\n    let a = 1;\n    let b = 2;\n\n"

		chunks = chunker.chunk(source, "open.rs")

		assert len(chunks) == 1
		assert (chunks[0].start_line, chunks[0].end_line) == (1, 3)

	def test_lines_before_first_block_are_ignored(self) -> None:
		"""Content before the first block start is not chunked."""
		chunker = FallbackChunker(RUST_PATTERNS, min_chunk_size=0)
		source = "use std::io;\nuse std::fs;\n\n" + RUST_SOURCE

		chunks = chunker.chunk(source, "lib.rs")

		assert chunks[0].start_line == 4

	def test_invalid_patterns_are_dropped(self) -> None:
		"""Patterns that fail to compile are discarded."""
		chunker = FallbackChunker(["(unclosed", r"^fn\s+"])

		assert len(chunker.patterns) == 1
		assert chunker.is_block_start("    fn indented()")
		assert not chunker.is_block_start("let x = 1;")
		assert not chunker.is_block_start("   ")


@pytest.mark.unit
class TestIndentBlocks:
	"""Tests for indentation-delimited blocks."""

	def test_python_blocks_end_on_dedent(self) -> None:
		"""A definition ends before the next line at its own indentation."""
		source = (
			"import os\n"
			"\n"
			"def load(path):\n"
			"    with open(path) as f:\n"
			"        return f.read()\n"
			"\n"
			"class Reader:\n"
			"    def read(self):\n"
			"        return 1\n"
		)
		chunker = FallbackChunker(PYTHON_PATTERNS, indent_based=True, min_chunk_size=0)

		chunks = chunker.chunk(source, "io.py", Language.PYTHON)

		assert [(c.start_line, c.end_line) for c in chunks] == [(3, 5), (7, 9)]
		assert "def read" in chunks[1].content

	def test_decorators_stay_with_definition(self) -> None:
		"""A decorator line and the function below it form one block."""
		source = "@cache\ndef compute(x):\n    return x * 2\n"
		chunker = FallbackChunker(PYTHON_PATTERNS, indent_based=True, min_chunk_size=0)

		chunks = chunker.chunk(source, "calc.py", Language.PYTHON)

		assert [(c.start_line, c.end_line) for c in chunks] == [(1, 3)]

	def test_ruby_end_belongs_to_block(self) -> None:
		"""A closing ``end`` line is included in the block it closes."""
		source = "def greet(name)\n  puts name\nend\n\ndef leave\n  puts 'bye'\nend\n"
		chunker = FallbackChunker(RUBY_PATTERNS, indent_based=True, min_chunk_size=0)

		chunks = chunker.chunk(source, "greet.rb", Language.RUBY)

		assert [(c.start_line, c.end_line) for c in chunks] == [(1, 3), (5, 7)]


@pytest.mark.unit
def test_generic_patterns_cover_common_definitions() -> None:
	"""The generic pattern set recognises definitions from several languages."""
	chunker = FallbackChunker(GENERIC_BLOCK_PATTERNS)

	for line in ("fn main() {", "pub fn run() {", "def handler(event):", "function load() {", "class Store {"):
		assert chunker.is_block_start(line), line
