"""
Vector store port.

Every operation that names a collection requires it to exist; stores never
create collections implicitly.

"""

from __future__ import annotations

import abc
from enum import Enum
from typing import TYPE_CHECKING, Any

from codescope.errors import InvalidArgumentError

if TYPE_CHECKING:
	from collections.abc import Sequence

	from codescope.processor.models import SearchResult


class DistanceMetric(str, Enum):
	"""Similarity metric chosen when a collection is created."""

	COSINE = "cosine"
	DOT = "dot"
	EUCLIDEAN = "euclidean"


def euclidean_score(distance: float) -> float:
	"""Map a Euclidean distance onto a similarity in (0, 1]."""
	return 1.0 / (1.0 + distance)


class VectorStore(abc.ABC):
	"""Stores vectors with metadata in named collections and answers similarity queries."""

	@abc.abstractmethod
	async def create_collection(self, name: str, dimensions: int) -> None:
		"""Create a collection holding vectors of ``dimensions`` values."""

	@abc.abstractmethod
	async def delete_collection(self, name: str) -> None:
		"""Drop a collection and everything in it."""

	@abc.abstractmethod
	async def collection_exists(self, name: str) -> bool:
		"""Whether the collection exists."""

	@abc.abstractmethod
	async def insert_vectors(
		self, collection: str, vectors: Sequence[Sequence[float]], metadata: Sequence[dict[str, Any]]
	) -> list[str]:
		"""Insert vectors with their metadata, returning assigned ids in input order."""

	@abc.abstractmethod
	async def search_similar(
		self, collection: str, query_vector: Sequence[float], k: int, filter: str | None = None
	) -> list[SearchResult]:
		"""Return at most ``k`` results, most similar first."""

	@abc.abstractmethod
	async def delete_vectors(self, collection: str, ids: Sequence[str]) -> None:
		"""Delete vectors by id. Unknown ids are ignored."""

	@abc.abstractmethod
	async def get_vectors_by_ids(self, collection: str, ids: Sequence[str]) -> list[SearchResult]:
		"""Fetch stored records by id, with a score of 1.0."""

	@abc.abstractmethod
	async def list_vectors(self, collection: str, limit: int) -> list[SearchResult]:
		"""Return up to ``limit`` stored records in insertion order."""

	@abc.abstractmethod
	async def flush(self, collection: str) -> None:
		"""Make prior inserts durable and queryable."""

	async def count(self, collection: str) -> int:
		"""Number of vectors in a collection."""
		return len(await self.list_vectors(collection, limit=2**31 - 1))

	async def close(self) -> None:
		"""Release backend resources."""
		return

	@staticmethod
	def _check_insert(vectors: Sequence[Sequence[float]], metadata: Sequence[dict[str, Any]], dimensions: int) -> None:
		"""
		Validate an insert request.

		Raises:
		    InvalidArgumentError: If lengths differ or a vector has the wrong size.

		"""
		if len(vectors) != len(metadata):
			msg = f"Got {len(vectors)} vectors but {len(metadata)} metadata records"
			raise InvalidArgumentError(msg)
		for vector in vectors:
			if len(vector) != dimensions:
				msg = f"Vector has {len(vector)} dimensions but the collection expects {dimensions}"
				raise InvalidArgumentError(msg)
