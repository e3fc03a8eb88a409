"""Embedding client that needs no model, for offline use and tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from codescope.processor.embedding.base import EmbeddingClient
from codescope.processor.models import Embedding

if TYPE_CHECKING:
	from collections.abc import Sequence

NULL_DIMENSIONS = 128
NULL_VALUE = 0.1


class NullEmbeddingClient(EmbeddingClient):
	"""Returns the same constant vector for every text."""

	def __init__(self, dimensions: int = NULL_DIMENSIONS) -> None:
		"""Initialize the client with the vector length to return."""
		self._dimensions = dimensions

	async def embed_batch(self, texts: Sequence[str]) -> list[Embedding]:
		"""Return one constant vector per text."""
		return [Embedding(vector=[NULL_VALUE] * self._dimensions, model="null", dimensions=self._dimensions) for _ in texts]

	def dimensions(self) -> int:
		"""Length of the constant vector."""
		return self._dimensions

	def provider_name(self) -> str:
		"""Provider identifier."""
		return "null"
