"""Vector store adapter for Milvus and Milvus Lite."""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from typing import TYPE_CHECKING, Any, TypeVar

from pymilvus import DataType, MilvusClient
from pymilvus.exceptions import MilvusException

from codescope.errors import NotFoundError, VectorStoreError
from codescope.processor.models import SearchResult
from codescope.processor.storage.base import DistanceMetric, VectorStore, euclidean_score
from codescope.processor.storage.memory import validate_collection_name

if TYPE_CHECKING:
	from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)

T = TypeVar("T")

FIELD_ID = "id"
FIELD_EMBEDDING = "embedding"
FIELD_METADATA = "metadata"
ID_MAX_LENGTH = 64
INDEX_TYPE = "FLAT"

METRIC_TYPES = {
	DistanceMetric.COSINE: "COSINE",
	DistanceMetric.DOT: "IP",
	DistanceMetric.EUCLIDEAN: "L2",
}


class MilvusVectorStore(VectorStore):
	"""
	Store vectors in Milvus through ``pymilvus.MilvusClient``.

	A local file path as ``uri`` selects Milvus Lite; an ``http://`` URI
	connects to a server. Each collection has a string primary key, a float
	vector field and a JSON metadata field.

	"""

	def __init__(
		self,
		uri: str,
		token: str | None = None,
		metric: DistanceMetric = DistanceMetric.COSINE,
		client: MilvusClient | None = None,
	) -> None:
		"""
		Initialize the store.

		Args:
		    uri: Milvus server URI or Milvus Lite database file.
		    token: Authentication token for a server.
		    metric: Similarity metric for new collections.
		    client: Pre-built client, mainly for tests.

		"""
		self.uri = uri
		self.metric = DistanceMetric(metric)
		self._token = token
		self._client = client
		self._dimensions: dict[str, int] = {}

	@property
	def client(self) -> MilvusClient:
		"""The MilvusClient, connected on first use."""
		if self._client is None:
			logger.info(f"Connecting to Milvus at: {self.uri}")
			try:
				self._client = MilvusClient(uri=self.uri, token=self._token or "")
			except MilvusException as e:
				msg = f"Failed to connect to Milvus at {self.uri}: {e}"
				raise VectorStoreError(msg) from e
		return self._client

	async def _call(self, operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
		"""Run a blocking client call in a worker thread, translating Milvus errors."""
		try:
			return await asyncio.to_thread(func, *args, **kwargs)
		except MilvusException as e:
			msg = f"Milvus {operation} failed: {e}"
			raise VectorStoreError(msg) from e

	async def _require(self, name: str) -> int:
		"""Return a collection's dimensions, raising NotFoundError if it is missing."""
		if not await self.collection_exists(name):
			msg = f"Collection '{name}' does not exist"
			raise NotFoundError(msg)
		if name not in self._dimensions:
			description = await self._call("describe_collection", self.client.describe_collection, collection_name=name)
			for schema_field in description.get("fields", []):
				if schema_field.get("name") == FIELD_EMBEDDING:
					self._dimensions[name] = int(schema_field.get("params", {}).get("dim", 0))
					break
			else:
				msg = f"Collection '{name}' has no '{FIELD_EMBEDDING}' field"
				raise VectorStoreError(msg)
		return self._dimensions[name]

	async def create_collection(self, name: str, dimensions: int) -> None:
		"""Create a collection with a FLAT index on the embedding field."""
		validate_collection_name(name)
		if await self.collection_exists(name):
			logger.debug(f"Collection '{name}' already exists.")
			return

		schema = MilvusClient.create_schema(auto_id=False, enable_dynamic_field=False)
		schema.add_field(field_name=FIELD_ID, datatype=DataType.VARCHAR, is_primary=True, max_length=ID_MAX_LENGTH)
		schema.add_field(field_name=FIELD_EMBEDDING, datatype=DataType.FLOAT_VECTOR, dim=dimensions)
		schema.add_field(field_name=FIELD_METADATA, datatype=DataType.JSON)

		index_params = self.client.prepare_index_params()
		index_params.add_index(field_name=FIELD_EMBEDDING, index_type=INDEX_TYPE, metric_type=METRIC_TYPES[self.metric])

		logger.info(f"Collection '{name}' not found. Creating...")
		await self._call(
			"create_collection",
			self.client.create_collection,
			collection_name=name,
			schema=schema,
			index_params=index_params,
		)
		self._dimensions[name] = dimensions

	async def delete_collection(self, name: str) -> None:
		"""Drop a collection."""
		await self._require(name)
		await self._call("drop_collection", self.client.drop_collection, collection_name=name)
		self._dimensions.pop(name, None)
		logger.info(f"Dropped collection '{name}'")

	async def collection_exists(self, name: str) -> bool:
		"""Whether the collection exists."""
		return bool(await self._call("has_collection", self.client.has_collection, collection_name=name))

	async def insert_vectors(
		self, collection: str, vectors: Sequence[Sequence[float]], metadata: Sequence[dict[str, Any]]
	) -> list[str]:
		"""Insert rows, assigning random hex ids."""
		dimensions = await self._require(collection)
		self._check_insert(vectors, metadata, dimensions)
		if not vectors:
			return []
		ids = [uuid.uuid4().hex for _ in vectors]
		rows = [
			{FIELD_ID: vector_id, FIELD_EMBEDDING: [float(v) for v in vector], FIELD_METADATA: dict(record)}
			for vector_id, vector, record in zip(ids, vectors, metadata, strict=True)
		]
		await self._call("insert", self.client.insert, collection_name=collection, data=rows)
		return ids

	def _to_score(self, distance: float) -> float:
		if self.metric is DistanceMetric.EUCLIDEAN:
			# Milvus reports squared L2 distances.
			return euclidean_score(math.sqrt(max(distance, 0.0)))
		return float(distance)

	async def search_similar(
		self, collection: str, query_vector: Sequence[float], k: int, filter: str | None = None
	) -> list[SearchResult]:
		"""Search the collection; ``filter`` is a Milvus boolean expression."""
		await self._require(collection)
		if k <= 0:
			return []
		hits = await self._call(
			"search",
			self.client.search,
			collection_name=collection,
			data=[list(query_vector)],
			limit=k,
			filter=filter or "",
			output_fields=[FIELD_METADATA],
			search_params={"metric_type": METRIC_TYPES[self.metric]},
		)
		if not hits:
			return []
		results = [
			SearchResult.from_metadata(
				hit["id"], self._to_score(hit["distance"]), hit.get("entity", {}).get(FIELD_METADATA)
			)
			for hit in hits[0]
		]
		results.sort(key=lambda r: r.score, reverse=True)
		return results[:k]

	async def delete_vectors(self, collection: str, ids: Sequence[str]) -> None:
		"""Delete rows by primary key."""
		await self._require(collection)
		if not ids:
			return
		await self._call("delete", self.client.delete, collection_name=collection, ids=list(ids))

	async def get_vectors_by_ids(self, collection: str, ids: Sequence[str]) -> list[SearchResult]:
		"""Fetch rows by primary key."""
		await self._require(collection)
		if not ids:
			return []
		rows = await self._call(
			"get", self.client.get, collection_name=collection, ids=list(ids), output_fields=[FIELD_METADATA]
		)
		return [SearchResult.from_metadata(row[FIELD_ID], 1.0, row.get(FIELD_METADATA)) for row in rows]

	async def list_vectors(self, collection: str, limit: int) -> list[SearchResult]:
		"""Return up to ``limit`` rows."""
		await self._require(collection)
		if limit <= 0:
			return []
		rows = await self._call(
			"query", self.client.query, collection_name=collection, filter="", output_fields=[FIELD_METADATA], limit=limit
		)
		return [SearchResult.from_metadata(row[FIELD_ID], 1.0, row.get(FIELD_METADATA)) for row in rows]

	async def count(self, collection: str) -> int:
		"""Row count reported by Milvus."""
		await self._require(collection)
		stats = await self._call("get_collection_stats", self.client.get_collection_stats, collection_name=collection)
		return int(stats.get("row_count", 0))

	async def flush(self, collection: str) -> None:
		"""Seal pending inserts so they are durable and searchable."""
		await self._require(collection)
		await self._call("flush", self.client.flush, collection_name=collection)

	async def close(self) -> None:
		"""Close the client connection."""
		if self._client is not None:
			logger.info("Closing Milvus client connection.")
			await self._call("close", self._client.close)
			self._client = None
