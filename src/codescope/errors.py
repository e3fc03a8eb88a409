"""
Error types shared across CodeScope.

Every error raised by the service facade is a :class:`CodeScopeError`
subclass, and every subclass carries a ``kind`` that transports map to
their own status codes.

"""

from __future__ import annotations


class CodeScopeError(Exception):
	"""Base exception for CodeScope errors."""

	kind = "Internal"


class NotFoundError(CodeScopeError):
	"""Raised when a codebase path or a collection does not exist."""

	kind = "NotFound"


class InvalidArgumentError(CodeScopeError):
	"""Raised for invalid input such as empty vectors or dimension mismatches."""

	kind = "InvalidArgument"


class EmbeddingError(CodeScopeError):
	"""Raised when the embedding provider fails."""

	kind = "Embedding"


class RateLimitError(EmbeddingError):
	"""Raised when the embedding provider asks the caller to slow down."""


class VectorStoreError(CodeScopeError):
	"""Raised when the vector store backend fails."""

	kind = "VectorStore"


class IoError(CodeScopeError):
	"""Raised when reading from or writing to the filesystem fails."""

	kind = "Io"


class InternalError(CodeScopeError):
	"""Raised for unexpected failures inside CodeScope."""

	kind = "Internal"


class SearchError(CodeScopeError):
	"""
	Raised when a search request fails.

	The ``cause`` attribute records which subsystem failed so transports can
	distinguish provider outages from bad requests.

	"""

	kind = "Search"

	def __init__(self, message: str, cause: str = "Internal") -> None:
		"""
		Initialize the error.

		Args:
		    message: Human readable description.
		    cause: Kind of the underlying failure, e.g. ``"Embedding"``.

		"""
		super().__init__(message)
		self.cause = cause

	@classmethod
	def from_error(cls, error: CodeScopeError) -> SearchError:
		"""Wrap another CodeScope error, keeping its kind as the cause."""
		return cls(str(error), cause=error.kind)


class SearchTimeoutError(SearchError):
	"""Raised when a search exceeds its deadline."""

	kind = "Timeout"

	def __init__(self, message: str) -> None:
		"""Initialize the error with a ``Timeout`` cause."""
		super().__init__(message, cause="Timeout")


class ConfigError(CodeScopeError):
	"""Raised when configuration cannot be loaded or validated."""

	kind = "InvalidArgument"


class ConfigFileNotFoundError(ConfigError):
	"""Raised when an explicitly requested config file does not exist."""


class ConfigParsingError(ConfigError):
	"""Raised when a config file is not valid YAML or fails validation."""
