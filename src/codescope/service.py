"""
CodeScope service facade.

:class:`CodeSearchService` wires configuration into the indexing and query
pipelines and exposes the four operations the CLI and the HTTP API offer:
index a codebase, search it, report status and clear an index.

"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from codescope.config import ConfigLoader
from codescope.errors import CodeScopeError, InvalidArgumentError
from codescope.processor.chunking import ChunkingOptions, CodeChunker
from codescope.processor.embedding import create_embedding_client
from codescope.processor.operations import OperationTracker
from codescope.processor.pipeline import IndexingPipeline
from codescope.processor.search import BM25Params, HybridSearchProvider, HybridWeights, QueryPipeline
from codescope.processor.search.hybrid import chunk_from_record
from codescope.processor.snapshot import SnapshotManager
from codescope.processor.storage import create_vector_store
from codescope.processor.storage.memory import validate_collection_name
from codescope.processor.sync import SyncCoordinator

if TYPE_CHECKING:
	from collections.abc import Callable
	from pathlib import Path

	from codescope.config.config_schema import AppConfigSchema
	from codescope.processor.embedding import EmbeddingClient
	from codescope.processor.models import IndexingResult, SearchResult
	from codescope.processor.storage import VectorStore

logger = logging.getLogger(__name__)

MAX_SEARCH_LIMIT = 1000
LEXICAL_REBUILD_LIMIT = 1_000_000


class CodeSearchService:
	"""Index codebases and answer searches against them."""

	def __init__(
		self,
		config: AppConfigSchema,
		embedding_client: EmbeddingClient | None = None,
		vector_store: VectorStore | None = None,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		"""
		Initialize the service.

		Args:
		    config: Application configuration.
		    embedding_client: Overrides the client built from ``config.embedding``.
		    vector_store: Overrides the store built from ``config.vector_store``.
		    clock: Monotonic clock used for debouncing.

		"""
		self.config = config
		self.default_collection = config.vector_store.collection
		self.embedding_client = embedding_client or create_embedding_client(config.embedding)
		self.vector_store = vector_store or create_vector_store(config.vector_store, config.data_dir)
		self.hybrid = HybridSearchProvider(
			weights=HybridWeights(config.hybrid_search.bm25_weight, config.hybrid_search.semantic_weight),
			params=BM25Params(k1=config.bm25.k1, b=config.bm25.b, min_token_length=config.bm25.min_token_length),
			enabled=config.hybrid_search.enabled,
		)
		self.snapshot_manager = SnapshotManager(config.data_dir, use_content_hash=config.sync.use_content_hash)
		self.coordinator = SyncCoordinator(debounce_interval=config.sync.debounce, clock=clock)
		self.chunker = CodeChunker(
			ChunkingOptions(
				min_chunk_size=config.chunking.min_chunk_size,
				max_chunk_size=config.chunking.max_chunk_size,
				min_lines=config.chunking.min_lines,
				max_chunks_per_file=config.chunking.max_chunks_per_file,
			)
		)
		self.tracker = OperationTracker()
		self.indexing = IndexingPipeline(
			self.embedding_client,
			self.vector_store,
			self.hybrid,
			self.snapshot_manager,
			self.coordinator,
			self.chunker,
			tracker=self.tracker,
			batch_size=config.embedding.batch_size,
			retry_count=config.embedding.retry_count,
		)
		self.query = QueryPipeline(self.embedding_client, self.vector_store, self.hybrid, timeout=config.search.timeout)
		self._workers = asyncio.Semaphore(config.sync.max_workers)
		self._lexical_loaded: set[str] = set()
		self._lexical_lock = asyncio.Lock()

	@classmethod
	def from_config_file(cls, config_file: Path | None = None) -> CodeSearchService:
		"""Build a service from a config file, or from the default lookup locations."""
		return cls(ConfigLoader(config_file).get)

	def _collection(self, collection: str | None) -> str:
		name = collection or self.default_collection
		validate_collection_name(name)
		return name

	async def _ensure_lexical_index(self, collection: str) -> None:
		"""
		Rebuild a collection's keyword index from the vector store once per process.

		The keyword index lives in memory only; the vector store is the record
		it is rebuilt from. Failures leave search semantic-only.

		"""
		async with self._lexical_lock:
			if collection in self._lexical_loaded:
				return
			self._lexical_loaded.add(collection)
			if self.hybrid.has_documents(collection):
				return
			try:
				if not await self.vector_store.collection_exists(collection):
					return
				records = await self.vector_store.list_vectors(collection, LEXICAL_REBUILD_LIMIT)
			except CodeScopeError as e:
				logger.warning(f"Could not rebuild keyword index for '{collection}': {e}")
				self._lexical_loaded.discard(collection)
				return
			chunks = [chunk for chunk in map(chunk_from_record, records) if chunk is not None]
			if chunks:
				await self.hybrid.rebuild_from(collection, chunks)

	async def index_codebase(
		self, path: str | Path, collection: str | None = None, force: bool = False
	) -> IndexingResult:
		"""
		Index the changed files of a codebase.

		Args:
		    path: Codebase root directory.
		    collection: Target collection; the configured default when omitted.
		    force: Ignore the debounce interval.

		Returns:
		    Counters describing the sync.

		Raises:
		    NotFoundError: If ``path`` is not an existing directory.
		    InvalidArgumentError: If the collection name is invalid.

		"""
		if not str(path).strip():
			msg = "Codebase path must not be empty"
			raise InvalidArgumentError(msg)
		name = self._collection(collection)
		await self._ensure_lexical_index(name)
		async with self._workers:
			return await self.indexing.run(path, name, force=force)

	async def search_code(
		self, query: str, limit: int | None = None, collection: str | None = None
	) -> list[SearchResult]:
		"""
		Search a collection.

		Args:
		    query: Search text; must not be blank.
		    limit: Maximum number of results, between 1 and 1000; ``search.default_limit`` when omitted.
		    collection: Collection to search; the configured default when omitted.

		Returns:
		    Results ordered by fused score. Empty when the collection does not exist.

		Raises:
		    InvalidArgumentError: If the query is blank or the limit out of range.
		    SearchError: If embedding or the vector store fails.

		"""
		if not query or not query.strip():
			msg = "Search query must not be empty"
			raise InvalidArgumentError(msg)
		if limit is None:
			limit = self.config.search.default_limit
		if not 1 <= limit <= MAX_SEARCH_LIMIT:
			msg = f"Search limit must be between 1 and {MAX_SEARCH_LIMIT}, got {limit}"
			raise InvalidArgumentError(msg)
		name = self._collection(collection)
		await self._ensure_lexical_index(name)
		self.tracker.increment(name, "searches")
		return await self.query.search(name, query, limit)

	async def get_indexing_status(self, collection: str | None = None) -> dict[str, Any]:
		"""
		Report running operations, counters and index sizes.

		Args:
		    collection: Collection to describe; the configured default when omitted.

		Returns:
		    A JSON-serializable status dictionary.

		"""
		name = self._collection(collection)
		status = self.tracker.snapshot(name)
		exists = await self.vector_store.collection_exists(name)
		status.update(
			{
				"collection": name,
				"exists": exists,
				"vector_count": await self.vector_store.count(name) if exists else 0,
				"lexical_index": self.hybrid.stats(name),
				"active_syncs": [
					{"codebase": batch.codebase_key, "batch_id": batch.id, "started_at": batch.created_at}
					for batch in self.coordinator.active_batches()
				],
				"embedding": {
					"provider": self.embedding_client.provider_name(),
					"model": self.config.embedding.model,
				},
			}
		)
		return status

	async def clear_index(self, collection: str | None = None) -> bool:
		"""
		Delete a collection from the vector store and the keyword index.

		Snapshots of codebases indexed into the collection are forgotten, so
		the next index call starts from scratch.

		Returns:
		    Whether the collection existed in the vector store.

		"""
		name = self._collection(collection)
		existed = await self.vector_store.collection_exists(name)
		if existed:
			await self.vector_store.delete_collection(name)
		await self.hybrid.clear_collection(name)
		await asyncio.to_thread(self.snapshot_manager.forget_collection, name)
		self._lexical_loaded.discard(name)
		logger.info(f"Cleared index '{name}'")
		return existed

	async def run_periodic_sync(
		self,
		path: str | Path,
		interval: float | None = None,
		collection: str | None = None,
		stop_event: asyncio.Event | None = None,
	) -> None:
		"""
		Re-index a codebase every ``interval`` seconds until ``stop_event`` is set.

		Errors of one round are logged and the loop continues.

		"""
		interval = interval or self.config.sync.interval
		stop_event = stop_event or asyncio.Event()
		logger.info(f"Starting periodic sync of {path} every {interval}s")
		while not stop_event.is_set():
			try:
				result = await self.index_codebase(path, collection)
				logger.debug(f"Periodic sync of {path}: {result}")
			except CodeScopeError:
				logger.exception(f"Periodic sync of {path} failed")
			try:
				await asyncio.wait_for(stop_event.wait(), timeout=interval)
			except TimeoutError:
				continue
		logger.info(f"Stopped periodic sync of {path}")

	async def close(self) -> None:
		"""Release backend resources."""
		await self.vector_store.close()
