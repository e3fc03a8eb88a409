"""
Language registry for the chunker.

Maps file extensions to :class:`~codescope.processor.models.Language` and
each language to the tree-sitter node kinds that form a chunk, plus the
patterns the fallback chunker uses to recognise the start of a block.

"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from codescope.processor.models import Language

DEFAULT_MIN_CHUNK_SIZE = 20
DEFAULT_MAX_CHUNK_SIZE = 8192

EXTENSION_MAP: dict[str, Language] = {
	"rs": Language.RUST,
	"py": Language.PYTHON,
	"js": Language.JAVASCRIPT,
	"jsx": Language.JAVASCRIPT,
	"ts": Language.TYPESCRIPT,
	"tsx": Language.TYPESCRIPT,
	"go": Language.GO,
	"java": Language.JAVA,
	"c": Language.C,
	"h": Language.C,
	"cc": Language.CPP,
	"cpp": Language.CPP,
	"cxx": Language.CPP,
	"hpp": Language.CPP,
	"cs": Language.CSHARP,
	"rb": Language.RUBY,
	"php": Language.PHP,
	"swift": Language.SWIFT,
	"kt": Language.KOTLIN,
	"kts": Language.KOTLIN,
	"scala": Language.SCALA,
	"hs": Language.HASKELL,
}


@dataclass(frozen=True)
class LanguageConfig:
	"""Chunking rules for one language."""

	language: Language
	"""Language these rules apply to."""

	grammar: str
	"""Name of the grammar in tree-sitter-language-pack."""

	node_kinds: frozenset[str]
	"""Syntax node types that become chunks."""

	block_patterns: tuple[str, ...]
	"""Regexes matching the first line of a block, used by the fallback chunker."""

	indent_based: bool = False
	"""Whether blocks end by dedent rather than by balanced braces."""

	min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE
	"""Chunks with fewer characters are discarded."""

	max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE
	"""Nodes larger than this are also split at child boundaries."""

	grammar_overrides: dict[str, str] = field(default_factory=dict)
	"""Per-extension grammar names, e.g. ``tsx`` for TypeScript JSX files."""

	def grammar_for(self, file_name: str) -> str:
		"""Grammar to use for a file, honouring extension overrides."""
		extension = Path(file_name).suffix.lstrip(".").lower()
		return self.grammar_overrides.get(extension, self.grammar)


_C_FAMILY_PATTERNS = (
	r"^(static\s+|inline\s+|extern\s+)*[\w\*\s]+\s+\**\w+\s*\([^;]*$",
	r"^(typedef\s+)?(struct|union|enum)\s+\w*\s*\{?\s*$",
)

LANGUAGE_CONFIGS: dict[Language, LanguageConfig] = {
	Language.RUST: LanguageConfig(
		language=Language.RUST,
		grammar="rust",
		node_kinds=frozenset(
			{
				"function_item",
				"impl_item",
				"trait_item",
				"struct_item",
				"enum_item",
				"mod_item",
				"macro_definition",
			}
		),
		block_patterns=(
			r"^(pub(\([^)]*\))?\s+)?(async\s+)?(unsafe\s+)?(const\s+)?fn\s+\w+",
			r"^(pub(\([^)]*\))?\s+)?(struct|enum|trait|mod|union)\s+\w+",
			r"^impl\b",
			r"^macro_rules!",
		),
	),
	Language.PYTHON: LanguageConfig(
		language=Language.PYTHON,
		grammar="python",
		node_kinds=frozenset({"function_definition", "class_definition", "decorated_definition"}),
		block_patterns=(r"^(async\s+)?def\s+\w+", r"^class\s+\w+", r"^@\w+"),
		indent_based=True,
	),
	Language.JAVASCRIPT: LanguageConfig(
		language=Language.JAVASCRIPT,
		grammar="javascript",
		node_kinds=frozenset(
			{
				"function_declaration",
				"generator_function_declaration",
				"class_declaration",
				"method_definition",
			}
		),
		block_patterns=(
			r"^(export\s+)?(default\s+)?(async\s+)?function\*?\s*\w*\s*\(",
			r"^(export\s+)?(default\s+)?class\s+\w+",
			r"^(export\s+)?(const|let|var)\s+\w+\s*=\s*(async\s+)?(\([^)]*\)|\w+)\s*=>",
		),
	),
	Language.TYPESCRIPT: LanguageConfig(
		language=Language.TYPESCRIPT,
		grammar="typescript",
		node_kinds=frozenset(
			{
				"function_declaration",
				"generator_function_declaration",
				"class_declaration",
				"abstract_class_declaration",
				"method_definition",
				"interface_declaration",
				"type_alias_declaration",
				"enum_declaration",
				"internal_module",
			}
		),
		block_patterns=(
			r"^(export\s+)?(default\s+)?(async\s+)?function\*?\s*\w*\s*[<(]",
			r"^(export\s+)?(default\s+)?(abstract\s+)?class\s+\w+",
			r"^(export\s+)?(interface|enum|namespace|type)\s+\w+",
			r"^(export\s+)?(const|let|var)\s+\w+(\s*:\s*[^=]+)?\s*=\s*(async\s+)?(\([^)]*\)|\w+)\s*=>",
		),
		grammar_overrides={"tsx": "tsx"},
	),
	Language.GO: LanguageConfig(
		language=Language.GO,
		grammar="go",
		node_kinds=frozenset({"function_declaration", "method_declaration", "type_declaration"}),
		block_patterns=(r"^func\s+", r"^type\s+\w+\s+(struct|interface)\b"),
	),
	Language.JAVA: LanguageConfig(
		language=Language.JAVA,
		grammar="java",
		node_kinds=frozenset(
			{
				"class_declaration",
				"interface_declaration",
				"enum_declaration",
				"record_declaration",
				"method_declaration",
				"constructor_declaration",
			}
		),
		block_patterns=(
			r"^((public|protected|private|static|final|abstract|sealed)\s+)*(class|interface|enum|record)\s+\w+",
			r"^((public|protected|private|static|final|abstract|synchronized)\s+)+[\w<>\[\],\s]+\s+\w+\s*\(",
		),
	),
	Language.C: LanguageConfig(
		language=Language.C,
		grammar="c",
		node_kinds=frozenset({"function_definition", "struct_specifier", "union_specifier", "enum_specifier"}),
		block_patterns=_C_FAMILY_PATTERNS,
	),
	Language.CPP: LanguageConfig(
		language=Language.CPP,
		grammar="cpp",
		node_kinds=frozenset(
			{
				"function_definition",
				"class_specifier",
				"struct_specifier",
				"enum_specifier",
				"namespace_definition",
				"template_declaration",
			}
		),
		block_patterns=(
			*_C_FAMILY_PATTERNS,
			r"^(template\s*<.*>\s*)?(class|struct)\s+\w+",
			r"^namespace\s+\w*",
		),
	),
	Language.CSHARP: LanguageConfig(
		language=Language.CSHARP,
		grammar="csharp",
		node_kinds=frozenset(
			{
				"class_declaration",
				"interface_declaration",
				"struct_declaration",
				"enum_declaration",
				"record_declaration",
				"method_declaration",
				"constructor_declaration",
			}
		),
		block_patterns=(
			r"^((public|private|protected|internal|static|sealed|abstract|partial)\s+)*(class|interface|struct|enum|record)\s+\w+",
			r"^((public|private|protected|internal|static|virtual|override|async)\s+)+[\w<>\[\],\s]+\s+\w+\s*\(",
		),
	),
	Language.RUBY: LanguageConfig(
		language=Language.RUBY,
		grammar="ruby",
		node_kinds=frozenset({"method", "singleton_method", "class", "module"}),
		block_patterns=(r"^def\s+", r"^class\s+\w+", r"^module\s+\w+"),
		indent_based=True,
	),
	Language.PHP: LanguageConfig(
		language=Language.PHP,
		grammar="php",
		node_kinds=frozenset(
			{
				"function_definition",
				"class_declaration",
				"interface_declaration",
				"trait_declaration",
				"method_declaration",
			}
		),
		block_patterns=(
			r"^((public|private|protected|static|abstract|final)\s+)*function\s+\w+",
			r"^((abstract|final)\s+)?(class|interface|trait)\s+\w+",
		),
	),
	Language.SWIFT: LanguageConfig(
		language=Language.SWIFT,
		grammar="swift",
		node_kinds=frozenset({"function_declaration", "class_declaration", "protocol_declaration"}),
		block_patterns=(
			r"^((public|private|internal|fileprivate|open|static|final)\s+)*func\s+\w+",
			r"^((public|private|internal|fileprivate|open|final)\s+)*(class|struct|enum|protocol|extension)\s+\w+",
		),
	),
	Language.KOTLIN: LanguageConfig(
		language=Language.KOTLIN,
		grammar="kotlin",
		node_kinds=frozenset({"function_declaration", "class_declaration", "object_declaration"}),
		block_patterns=(
			r"^((public|private|internal|protected|override|suspend|inline)\s+)*fun\s+",
			r"^((public|private|internal|data|sealed|abstract|open|enum)\s+)*(class|interface|object)\s+\w+",
		),
	),
	Language.SCALA: LanguageConfig(
		language=Language.SCALA,
		grammar="scala",
		node_kinds=frozenset({"function_definition", "class_definition", "object_definition", "trait_definition"}),
		block_patterns=(
			r"^((private|protected|override|final)\s+)*def\s+\w+",
			r"^((case|abstract|sealed|final)\s+)*(class|object|trait)\s+\w+",
		),
	),
	Language.HASKELL: LanguageConfig(
		language=Language.HASKELL,
		grammar="haskell",
		node_kinds=frozenset({"function", "data_type", "newtype", "class", "instance"}),
		block_patterns=(r"^\w+\s*::", r"^(data|newtype|class|instance)\s+"),
		indent_based=True,
	),
}


def detect_language(file_path: str | Path) -> Language:
	"""
	Detect a file's language from its extension.

	Args:
	    file_path: Path or file name.

	Returns:
	    The matching language, or ``Language.UNKNOWN``.

	"""
	extension = Path(file_path).suffix.lstrip(".").lower()
	return EXTENSION_MAP.get(extension, Language.UNKNOWN)


def is_supported_file(file_path: str | Path) -> bool:
	"""Whether a file has a recognized source extension."""
	return detect_language(file_path) is not Language.UNKNOWN


def get_language_config(language: Language) -> LanguageConfig | None:
	"""Rules for a language, or None for ``Language.UNKNOWN``."""
	return LANGUAGE_CONFIGS.get(language)
