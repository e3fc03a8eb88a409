"""Embedding client for hosted providers via LiteLLM."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import litellm

from codescope.errors import EmbeddingError, InvalidArgumentError, RateLimitError
from codescope.processor.embedding.base import EmbeddingClient

if TYPE_CHECKING:
	from collections.abc import Sequence

	from codescope.processor.models import Embedding

logger = logging.getLogger(__name__)


class LiteLLMEmbeddingClient(EmbeddingClient):
	"""Embed text through ``litellm.aembedding`` (OpenAI, Voyage, Cohere, Ollama and others)."""

	def __init__(
		self,
		model: str,
		dimensions: int,
		api_key: str | None = None,
		api_base: str | None = None,
		timeout: float = 30.0,
	) -> None:
		"""
		Initialize the client.

		Args:
		    model: LiteLLM model string, e.g. ``"openai/text-embedding-3-small"``.
		    dimensions: Vector length the model returns. Hosted models do not
		        report it up front, so it must be configured.
		    api_key: Provider API key, if not taken from the environment.
		    api_base: Custom endpoint, e.g. a local Ollama server.
		    timeout: Request timeout in seconds.

		"""
		if dimensions <= 0:
			msg = f"Embedding dimensions must be positive, got {dimensions}"
			raise InvalidArgumentError(msg)
		self.model = model
		self._dimensions = dimensions
		self.api_key = api_key
		self.api_base = api_base
		self.timeout = timeout

	async def embed_batch(self, texts: Sequence[str]) -> list[Embedding]:
		"""Embed texts with one provider request."""
		if not texts:
			return []

		kwargs: dict[str, Any] = {"model": self.model, "input": list(texts), "timeout": self.timeout}
		if self.api_key:
			kwargs["api_key"] = self.api_key
		if self.api_base:
			kwargs["api_base"] = self.api_base

		try:
			response = await litellm.aembedding(**kwargs)
		except litellm.RateLimitError as e:
			msg = f"Embedding provider rate limit hit for model '{self.model}'"
			raise RateLimitError(msg) from e
		except Exception as e:
			msg = f"Embedding request to model '{self.model}' failed: {e}"
			raise EmbeddingError(msg) from e

		vectors = [item["embedding"] if isinstance(item, dict) else item.embedding for item in response.data]
		return self._to_embeddings(vectors, response.model or self.model, len(texts))

	def dimensions(self) -> int:
		"""Configured vector length."""
		return self._dimensions

	def provider_name(self) -> str:
		"""Provider identifier."""
		return "litellm"
