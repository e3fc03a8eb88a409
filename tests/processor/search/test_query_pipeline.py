"""Tests for the query pipeline."""

import asyncio
from collections.abc import Sequence
from unittest.mock import AsyncMock

import pytest
from conftest import FailingEmbeddingClient, KeywordEmbeddingClient

from codescope.errors import SearchError, SearchTimeoutError, VectorStoreError
from codescope.processor.models import CodeChunk, Embedding, Language
from codescope.processor.search import HybridSearchProvider, QueryPipeline, over_fetch_count
from codescope.processor.storage import InMemoryVectorStore


def make_chunk(content: str, file_path: str) -> CodeChunk:
	"""Build a one-line Rust chunk."""
	return CodeChunk(
		id=f"{file_path}_1_1",
		content=content,
		file_path=file_path,
		start_line=1,
		end_line=1,
		language=Language.RUST,
	)


async def populate(
	store: InMemoryVectorStore, client: KeywordEmbeddingClient, chunks: Sequence[CodeChunk], collection: str = "main"
) -> None:
	"""Create a collection and store the chunks' keyword embeddings."""
	await store.create_collection(collection, client.dimensions())
	embeddings = await client.embed_batch([chunk.content for chunk in chunks])
	await store.insert_vectors(collection, [e.vector for e in embeddings], [c.to_metadata() for c in chunks])


class SlowEmbeddingClient(KeywordEmbeddingClient):
	"""Client that never answers in time."""

	async def embed_batch(self, texts: Sequence[str]) -> list[Embedding]:
		await asyncio.sleep(10)
		return await super().embed_batch(texts)


@pytest.mark.unit
@pytest.mark.parametrize(("limit", "expected"), [(1, 20), (10, 20), (15, 30), (50, 100), (1000, 100)])
def test_over_fetch_count(limit: int, expected: int) -> None:
	"""Candidates are over-fetched within fixed bounds."""
	assert over_fetch_count(limit) == expected


@pytest.mark.unit
class TestQueryPipeline:
	"""Tests for embedding, retrieval and reranking of queries."""

	async def test_returns_best_match_first(self, keyword_client: KeywordEmbeddingClient) -> None:
		"""The chunk sharing the query's words ranks first with a fused score."""
		store = InMemoryVectorStore()
		hybrid = HybridSearchProvider()
		chunks = [make_chunk("fn foo() { }", "a.rs"), make_chunk("fn bar() { }", "b.rs")]
		await populate(store, keyword_client, chunks)
		await hybrid.index_chunks("main", chunks)
		pipeline = QueryPipeline(keyword_client, store, hybrid)

		results = await pipeline.search("main", "foo", limit=10)

		assert [r.file_path for r in results] == ["a.rs", "b.rs"]
		assert results[0].content == "fn foo() { }"
		assert results[0].score > results[1].score

	async def test_limit(self, keyword_client: KeywordEmbeddingClient) -> None:
		"""No more than ``limit`` results are returned."""
		store = InMemoryVectorStore()
		chunks = [make_chunk(f"fn f{i}() {{ }}", f"{i}.rs") for i in range(5)]
		await populate(store, keyword_client, chunks)
		pipeline = QueryPipeline(keyword_client, store, HybridSearchProvider())

		assert len(await pipeline.search("main", "foo", limit=2)) == 2

	async def test_missing_collection_returns_nothing(self, keyword_client: KeywordEmbeddingClient) -> None:
		"""Searching a collection that does not exist is not an error."""
		pipeline = QueryPipeline(keyword_client, InMemoryVectorStore(), HybridSearchProvider())

		assert await pipeline.search("absent", "foo", limit=5) == []
		assert keyword_client.calls == []

	async def test_over_fetches_from_store(self, keyword_client: KeywordEmbeddingClient) -> None:
		"""The store is asked for the over-fetch count, not the limit."""
		store = AsyncMock(spec=InMemoryVectorStore)
		store.collection_exists.return_value = True
		store.search_similar.return_value = []
		pipeline = QueryPipeline(keyword_client, store, HybridSearchProvider())

		await pipeline.search("main", "foo", limit=30)

		args = store.search_similar.await_args.args
		assert args[0] == "main"
		assert args[2] == 60

	async def test_embedding_failure_becomes_search_error(self) -> None:
		"""Provider failures are reported as SearchError with an Embedding cause."""
		client = FailingEmbeddingClient({1})
		store = InMemoryVectorStore()
		await store.create_collection("main", client.dimensions())
		pipeline = QueryPipeline(client, store, HybridSearchProvider())

		with pytest.raises(SearchError) as exc_info:
			await pipeline.search("main", "foo", limit=5)

		assert exc_info.value.cause == "Embedding"
		assert "provider unavailable" in str(exc_info.value)

	async def test_store_failure_becomes_search_error(self, keyword_client: KeywordEmbeddingClient) -> None:
		"""Vector store failures keep their kind as the cause."""
		store = AsyncMock(spec=InMemoryVectorStore)
		store.collection_exists.return_value = True
		store.search_similar.side_effect = VectorStoreError("connection refused")
		pipeline = QueryPipeline(keyword_client, store, HybridSearchProvider())

		with pytest.raises(SearchError) as exc_info:
			await pipeline.search("main", "foo", limit=5)

		assert exc_info.value.cause == "VectorStore"

	async def test_timeout(self) -> None:
		"""Searches running past the deadline raise SearchTimeoutError."""
		client = SlowEmbeddingClient()
		store = InMemoryVectorStore()
		await store.create_collection("main", client.dimensions())
		pipeline = QueryPipeline(client, store, HybridSearchProvider(), timeout=0.05)

		with pytest.raises(SearchTimeoutError) as exc_info:
			await pipeline.search("main", "foo", limit=5)

		assert exc_info.value.kind == "Timeout"
		assert exc_info.value.cause == "Timeout"
