"""Embedding client port."""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING

from codescope.errors import EmbeddingError
from codescope.processor.models import Embedding

if TYPE_CHECKING:
	from collections.abc import Sequence


class EmbeddingClient(abc.ABC):
	"""
	Turns text into fixed-length vectors.

	Implementations must return one embedding per input text, all with
	``dimensions()`` values, and must be safe to call concurrently. Any
	failure is raised as :class:`~codescope.errors.EmbeddingError`.

	"""

	@abc.abstractmethod
	async def embed_batch(self, texts: Sequence[str]) -> list[Embedding]:
		"""Embed texts, returning embeddings in input order."""

	@abc.abstractmethod
	def dimensions(self) -> int:
		"""Length of every vector this client returns."""

	@abc.abstractmethod
	def provider_name(self) -> str:
		"""Short provider identifier, e.g. ``"litellm"``."""

	def _to_embeddings(self, vectors: Sequence[Sequence[float]], model: str, expected: int) -> list[Embedding]:
		"""
		Validate raw vectors from a provider and wrap them.

		Raises:
		    EmbeddingError: If the provider returned the wrong number of vectors
		        or a vector of the wrong length.

		"""
		if len(vectors) != expected:
			msg = f"{self.provider_name()} returned {len(vectors)} embeddings for {expected} texts"
			raise EmbeddingError(msg)
		dimensions = self.dimensions()
		embeddings = []
		for vector in vectors:
			values = [float(v) for v in vector]
			if len(values) != dimensions:
				msg = f"{self.provider_name()} returned a {len(values)}-dimensional vector, expected {dimensions}"
				raise EmbeddingError(msg)
			embeddings.append(Embedding(vector=values, model=model, dimensions=dimensions))
		return embeddings
