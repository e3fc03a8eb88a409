"""Query pipeline: embed, over-fetch, rerank."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from codescope.errors import CodeScopeError, EmbeddingError, NotFoundError, SearchError, SearchTimeoutError
from codescope.processor.models import SearchResult

if TYPE_CHECKING:
	from codescope.processor.embedding import EmbeddingClient
	from codescope.processor.search.hybrid import HybridSearchProvider
	from codescope.processor.storage import VectorStore

logger = logging.getLogger(__name__)

MIN_OVER_FETCH = 20
MAX_OVER_FETCH = 100


def over_fetch_count(limit: int) -> int:
	"""Number of semantic candidates to request for a final ``limit``."""
	return max(MIN_OVER_FETCH, min(2 * limit, MAX_OVER_FETCH))


class QueryPipeline:
	"""Answer a query against one collection."""

	def __init__(
		self,
		embedding_client: EmbeddingClient,
		vector_store: VectorStore,
		hybrid: HybridSearchProvider,
		timeout: float | None = None,
	) -> None:
		"""
		Initialize the pipeline.

		Args:
		    embedding_client: Client used to embed the query.
		    vector_store: Store holding the collection's vectors.
		    hybrid: Keyword index and fusion.
		    timeout: Seconds before a search is abandoned; None for no limit.

		"""
		self.embedding_client = embedding_client
		self.vector_store = vector_store
		self.hybrid = hybrid
		self.timeout = timeout

	async def search(self, collection: str, query: str, limit: int) -> list[SearchResult]:
		"""
		Search a collection.

		Args:
		    collection: Collection to search.
		    query: Natural-language or keyword query.
		    limit: Maximum number of results.

		Returns:
		    Up to ``limit`` results, best first, with fused scores. An empty
		    list when the collection does not exist.

		Raises:
		    SearchError: If embedding or the vector store fails.
		    SearchTimeoutError: If the search takes longer than ``timeout``.

		"""
		try:
			return await asyncio.wait_for(self._search(collection, query, limit), timeout=self.timeout)
		except TimeoutError as e:
			msg = f"Search in '{collection}' timed out after {self.timeout} seconds"
			logger.warning(msg)
			raise SearchTimeoutError(msg) from e

	async def _search(self, collection: str, query: str, limit: int) -> list[SearchResult]:
		try:
			if not await self.vector_store.collection_exists(collection):
				logger.debug(f"Collection '{collection}' does not exist; returning no results")
				return []

			embeddings = await self.embedding_client.embed_batch([query])
			if len(embeddings) != 1:
				msg = f"Expected one query embedding, got {len(embeddings)}"
				raise EmbeddingError(msg)

			candidates = await self.vector_store.search_similar(
				collection, embeddings[0].vector, over_fetch_count(limit)
			)
		except NotFoundError:
			logger.debug(f"Collection '{collection}' disappeared during search")
			return []
		except SearchError:
			raise
		except CodeScopeError as e:
			logger.warning(f"Search in '{collection}' failed: {e}")
			raise SearchError.from_error(e) from e

		mapped = [SearchResult.from_metadata(c.id, c.score, c.metadata) for c in candidates]
		fused = await self.hybrid.search(collection, query, mapped, limit)

		results = []
		for item in fused:
			item.result.score = item.hybrid_score
			results.append(item.result)
		logger.debug(f"Search in '{collection}' returned {len(results)} of {len(candidates)} candidates")
		return results
