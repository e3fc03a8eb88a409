"""Embedding clients."""

from __future__ import annotations

from typing import TYPE_CHECKING

from codescope.errors import InvalidArgumentError
from codescope.processor.embedding.base import EmbeddingClient
from codescope.processor.embedding.null import NullEmbeddingClient

if TYPE_CHECKING:
	from codescope.config.config_schema import EmbeddingSchema

__all__ = ["EmbeddingClient", "NullEmbeddingClient", "create_embedding_client"]


def create_embedding_client(config: EmbeddingSchema) -> EmbeddingClient:
	"""
	Build the embedding client named by the configuration.

	The model-backed clients are imported here so that the null client works
	without loading torch or litellm.

	Raises:
	    InvalidArgumentError: If the provider needs settings that are missing.

	"""
	if config.provider == "null":
		return NullEmbeddingClient(config.dimensions or 128)

	if config.provider == "sentence-transformers":
		from codescope.processor.embedding.local import SentenceTransformerEmbeddingClient

		return SentenceTransformerEmbeddingClient(config.model, device=config.device, batch_size=config.batch_size)

	if config.provider == "litellm":
		from codescope.processor.embedding.hosted import LiteLLMEmbeddingClient

		if config.dimensions is None:
			msg = "embedding.dimensions is required for the litellm provider"
			raise InvalidArgumentError(msg)
		return LiteLLMEmbeddingClient(
			config.model,
			config.dimensions,
			api_key=config.api_key,
			api_base=config.api_base,
			timeout=config.timeout,
		)

	msg = f"Unknown embedding provider: {config.provider}"
	raise InvalidArgumentError(msg)
