"""Language detection and code chunking."""

from codescope.processor.chunking.chunker import ChunkBatchResult, ChunkingOptions, CodeChunker, is_binary, read_source
from codescope.processor.chunking.languages import LANGUAGE_CONFIGS, LanguageConfig, detect_language, is_supported_file

__all__ = [
	"LANGUAGE_CONFIGS",
	"ChunkBatchResult",
	"ChunkingOptions",
	"CodeChunker",
	"LanguageConfig",
	"detect_language",
	"is_binary",
	"is_supported_file",
	"read_source",
]
