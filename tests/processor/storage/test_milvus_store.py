"""Tests for the Milvus vector store adapter with a mocked client."""

from unittest.mock import MagicMock

import pytest
from pymilvus import MilvusClient
from pymilvus.exceptions import MilvusException

from codescope.errors import InvalidArgumentError, NotFoundError, VectorStoreError
from codescope.processor.storage import DistanceMetric
from codescope.processor.storage.milvus import FIELD_EMBEDDING, FIELD_METADATA, MilvusVectorStore


def described(dimensions: int) -> dict:
	"""A describe_collection response with an embedding field."""
	return {"fields": [{"name": "id"}, {"name": FIELD_EMBEDDING, "params": {"dim": dimensions}}]}


@pytest.fixture
def mock_client() -> MagicMock:
	"""A MilvusClient mock where the ``main`` collection exists with three dimensions."""
	client = MagicMock(spec=MilvusClient)
	client.has_collection.side_effect = lambda collection_name: collection_name == "main"
	client.describe_collection.return_value = described(3)
	return client


@pytest.fixture
def milvus_store(mock_client: MagicMock) -> MilvusVectorStore:
	"""Store wired to the mock client."""
	return MilvusVectorStore("unused.db", client=mock_client)


@pytest.mark.unit
class TestMilvusCollections:
	"""Tests for collection management."""

	async def test_create_skipped_when_existing(self, milvus_store: MilvusVectorStore, mock_client: MagicMock) -> None:
		"""Existing collections are left alone."""
		await milvus_store.create_collection("main", 3)

		mock_client.create_collection.assert_not_called()

	async def test_create_new_collection(self, milvus_store: MilvusVectorStore, mock_client: MagicMock) -> None:
		"""New collections are created with a schema and index parameters."""
		await milvus_store.create_collection("fresh", 8)

		mock_client.create_collection.assert_called_once()
		kwargs = mock_client.create_collection.call_args.kwargs
		assert kwargs["collection_name"] == "fresh"
		assert "schema" in kwargs
		assert "index_params" in kwargs
		mock_client.prepare_index_params.return_value.add_index.assert_called_once_with(
			field_name=FIELD_EMBEDDING, index_type="FLAT", metric_type="COSINE"
		)

	async def test_delete_missing_collection(self, milvus_store: MilvusVectorStore) -> None:
		"""Dropping an unknown collection raises NotFoundError."""
		with pytest.raises(NotFoundError):
			await milvus_store.delete_collection("absent")

	async def test_delete_collection(self, milvus_store: MilvusVectorStore, mock_client: MagicMock) -> None:
		"""Existing collections are dropped."""
		await milvus_store.delete_collection("main")

		mock_client.drop_collection.assert_called_once_with(collection_name="main")

	async def test_milvus_errors_are_translated(self, milvus_store: MilvusVectorStore, mock_client: MagicMock) -> None:
		"""Client exceptions surface as VectorStoreError."""
		mock_client.has_collection.side_effect = MilvusException(message="server down")

		with pytest.raises(VectorStoreError, match="has_collection"):
			await milvus_store.collection_exists("main")


@pytest.mark.unit
class TestMilvusVectors:
	"""Tests for row operations."""

	async def test_insert(self, milvus_store: MilvusVectorStore, mock_client: MagicMock) -> None:
		"""Rows carry generated ids, float vectors and metadata."""
		ids = await milvus_store.insert_vectors("main", [[1, 0, 0]], [{"file_path": "a.rs"}])

		rows = mock_client.insert.call_args.kwargs["data"]
		assert rows == [{"id": ids[0], FIELD_EMBEDDING: [1.0, 0.0, 0.0], FIELD_METADATA: {"file_path": "a.rs"}}]

	async def test_insert_dimension_mismatch(self, milvus_store: MilvusVectorStore, mock_client: MagicMock) -> None:
		"""Vectors are checked against the described dimensions."""
		with pytest.raises(InvalidArgumentError):
			await milvus_store.insert_vectors("main", [[1.0, 0.0]], [{}])
		mock_client.insert.assert_not_called()

	async def test_search_maps_hits(self, milvus_store: MilvusVectorStore, mock_client: MagicMock) -> None:
		"""Hits are converted to results, best first."""
		mock_client.search.return_value = [
			[
				{"id": "b", "distance": 0.2, "entity": {FIELD_METADATA: {"file_path": "b.rs", "start_line": 4}}},
				{"id": "a", "distance": 0.9, "entity": {FIELD_METADATA: {"file_path": "a.rs", "start_line": 1}}},
			]
		]

		results = await milvus_store.search_similar("main", [1.0, 0.0, 0.0], k=5, filter='file_path == "a.rs"')

		assert [r.id for r in results] == ["a", "b"]
		assert results[1].start_line == 4
		kwargs = mock_client.search.call_args.kwargs
		assert kwargs["limit"] == 5
		assert kwargs["filter"] == 'file_path == "a.rs"'

	async def test_euclidean_scores(self, mock_client: MagicMock) -> None:
		"""Squared L2 distances become similarities."""
		store = MilvusVectorStore("unused.db", metric=DistanceMetric.EUCLIDEAN, client=mock_client)
		mock_client.search.return_value = [[{"id": "a", "distance": 9.0, "entity": {FIELD_METADATA: {}}}]]

		[result] = await store.search_similar("main", [0.0, 0.0, 0.0], k=1)

		assert result.score == pytest.approx(0.25)

	async def test_search_missing_collection(self, milvus_store: MilvusVectorStore) -> None:
		"""Searching an unknown collection raises NotFoundError."""
		with pytest.raises(NotFoundError):
			await milvus_store.search_similar("absent", [1.0, 0.0, 0.0], k=5)

	async def test_get_list_and_count(self, milvus_store: MilvusVectorStore, mock_client: MagicMock) -> None:
		"""Fetches by id, listing and counting go through the client."""
		mock_client.get.return_value = [{"id": "a", FIELD_METADATA: {"file_path": "a.rs"}}]
		mock_client.query.return_value = [{"id": "a", FIELD_METADATA: {"file_path": "a.rs"}}]
		mock_client.get_collection_stats.return_value = {"row_count": 7}

		assert [r.file_path for r in await milvus_store.get_vectors_by_ids("main", ["a"])] == ["a.rs"]
		assert [r.id for r in await milvus_store.list_vectors("main", limit=10)] == ["a"]
		assert await milvus_store.count("main") == 7

	async def test_delete_and_flush(self, milvus_store: MilvusVectorStore, mock_client: MagicMock) -> None:
		"""Deletes and flushes are forwarded; empty deletes are skipped."""
		await milvus_store.delete_vectors("main", [])
		await milvus_store.delete_vectors("main", ["a", "b"])
		await milvus_store.flush("main")

		mock_client.delete.assert_called_once_with(collection_name="main", ids=["a", "b"])
		mock_client.flush.assert_called_once_with(collection_name="main")

	async def test_close(self, milvus_store: MilvusVectorStore, mock_client: MagicMock) -> None:
		"""Closing releases the client."""
		await milvus_store.close()

		mock_client.close.assert_called_once()
		assert milvus_store._client is None
