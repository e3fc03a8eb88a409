"""
Indexing pipeline.

Brings a collection in line with the files of a codebase: diff the last
committed snapshot against the disk, chunk changed files, embed and store
the chunks in bounded batches, update the keyword index and commit the new
snapshot. Failures of single files or batches are logged and counted; those
files keep their old snapshot entry so the next sync retries them.

"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING

from tenacity import (
	AsyncRetrying,
	before_sleep_log,
	retry_if_exception_type,
	stop_after_attempt,
	wait_exponential,
)

from codescope.errors import (
	CodeScopeError,
	EmbeddingError,
	InvalidArgumentError,
	IoError,
	NotFoundError,
	RateLimitError,
)
from codescope.processor.chunking import detect_language, read_source
from codescope.processor.models import IndexingResult, Language
from codescope.processor.operations import OperationTracker
from codescope.processor.snapshot import SnapshotManager
from codescope.processor.sync import SyncOptions

if TYPE_CHECKING:
	from collections.abc import Sequence

	from codescope.processor.chunking import CodeChunker
	from codescope.processor.embedding import EmbeddingClient
	from codescope.processor.models import CodebaseSnapshot, CodeChunk, Embedding, SnapshotChanges, SyncBatch
	from codescope.processor.operations import Operation
	from codescope.processor.search import HybridSearchProvider
	from codescope.processor.storage import VectorStore
	from codescope.processor.sync import SyncCoordinator

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 64
DEFAULT_RETRY_COUNT = 3
BACKOFF_INITIAL = 0.1
BACKOFF_MAX = 5.0


class SyncCancelledError(Exception):
	"""Raised inside a run when its sync slot was cancelled."""


@dataclass
class _RunState:
	"""Bookkeeping for one pipeline run."""

	buffer: list[CodeChunk] = field(default_factory=list)
	new_ids: dict[str, list[str]] = field(default_factory=lambda: defaultdict(list))
	processed: set[str] = field(default_factory=set)
	failed: set[str] = field(default_factory=set)
	chunks_indexed: int = 0
	batch_failures: int = 0
	file_failures: int = 0


class IndexingPipeline:
	"""Index the changed files of a codebase into a collection."""

	def __init__(
		self,
		embedding_client: EmbeddingClient,
		vector_store: VectorStore,
		hybrid: HybridSearchProvider,
		snapshot_manager: SnapshotManager,
		coordinator: SyncCoordinator,
		chunker: CodeChunker,
		tracker: OperationTracker | None = None,
		batch_size: int = DEFAULT_BATCH_SIZE,
		retry_count: int = DEFAULT_RETRY_COUNT,
		backoff_initial: float = BACKOFF_INITIAL,
		backoff_max: float = BACKOFF_MAX,
	) -> None:
		"""
		Initialize the pipeline.

		Args:
		    embedding_client: Client used to embed chunks.
		    vector_store: Store receiving the vectors.
		    hybrid: Keyword index updated alongside the store.
		    snapshot_manager: Source of changed files and snapshot persistence.
		    coordinator: Debounce and single-flight per codebase.
		    chunker: Splits files into chunks.
		    tracker: Receives progress and counters.
		    batch_size: Chunks per embedding request.
		    retry_count: Retries of a rate-limited embedding request.
		    backoff_initial: First retry delay in seconds, doubled per retry.
		    backoff_max: Upper bound of the retry delay in seconds.

		"""
		if batch_size <= 0:
			msg = f"batch_size must be positive, got {batch_size}"
			raise InvalidArgumentError(msg)
		self.embedding_client = embedding_client
		self.vector_store = vector_store
		self.hybrid = hybrid
		self.snapshot_manager = snapshot_manager
		self.coordinator = coordinator
		self.chunker = chunker
		self.tracker = tracker or OperationTracker()
		self.batch_size = batch_size
		self.retry_count = retry_count
		self.backoff_initial = backoff_initial
		self.backoff_max = backoff_max

	async def run(self, root: str | Path, collection: str, force: bool = False) -> IndexingResult:
		"""
		Sync a codebase into a collection.

		Args:
		    root: Codebase root directory.
		    collection: Target collection.
		    force: Ignore the debounce interval.

		Returns:
		    What was done. ``performed`` is False when the sync was debounced or
		    another sync of the same codebase was running.

		Raises:
		    NotFoundError: If ``root`` is not an existing directory.

		"""
		root_path = Path(root).expanduser()
		if not root_path.is_dir():
			msg = f"Codebase path does not exist or is not a directory: {root}"
			raise NotFoundError(msg)
		root_path = root_path.resolve()

		outcome = await self.coordinator.sync(
			root_path, SyncOptions(force=force), lambda batch: self._run(root_path, collection, batch)
		)
		if not outcome.performed or outcome.value is None:
			self.tracker.increment(collection, "syncs_skipped")
			return IndexingResult(performed=False, skipped_reason=outcome.status.value)
		return outcome.value

	async def _run(self, root: Path, collection: str, batch: SyncBatch) -> IndexingResult:
		operation = self.tracker.start(str(root), collection)
		try:
			return await self._index(root, collection, batch, operation)
		finally:
			self.tracker.finish(operation)

	async def _index(self, root: Path, collection: str, batch: SyncBatch, operation: Operation) -> IndexingResult:
		previous = await asyncio.to_thread(self.snapshot_manager.load, root, collection)
		current = await asyncio.to_thread(self.snapshot_manager.snapshot, root)
		changes = self.snapshot_manager.diff(previous, current)
		result = IndexingResult(performed=True, files_changed=len(changes.changed) + len(changes.removed))

		if changes.is_empty:
			logger.info(f"No changes in {root}")
			if previous is None or previous.skipped != current.skipped:
				await asyncio.to_thread(self.snapshot_manager.commit, current, previous, (), None, collection)
			self.tracker.increment(collection, "syncs_performed")
			return result

		changed = sorted(changes.changed)
		logger.info(
			f"Indexing {root} into '{collection}': {len(changes.added)} added, "
			f"{len(changes.modified)} modified, {len(changes.removed)} removed"
		)
		operation.status = "indexing"
		operation.files_total = len(changed)

		state = _RunState()
		try:
			for relative in changed:
				self._check_cancelled(batch)
				await self._process_file(root, collection, relative, relative in changes.modified, state, batch)
				operation.files_processed += 1
				operation.chunks_indexed = state.chunks_indexed
			if state.buffer:
				await self._flush_batch(collection, state, batch)
		except SyncCancelledError:
			logger.warning(f"Sync of {root} was cancelled; discarding {len(state.buffer)} buffered chunks")
			result.cancelled = True
			state.failed.update(chunk.file_path for chunk in state.buffer)
			state.buffer = []
			state.failed.update(set(changed) - state.processed)

		operation.status = "finalizing"
		await self._finalize(collection, previous, current, changes, state)

		result.chunks_indexed = state.chunks_indexed
		result.failures = state.batch_failures + state.file_failures
		self.tracker.increment(collection, "syncs_performed")
		self.tracker.increment(collection, "files_indexed", len(state.processed - state.failed))
		self.tracker.increment(collection, "chunks_indexed", state.chunks_indexed)
		self.tracker.increment(collection, "batch_failures", state.batch_failures)
		self.tracker.increment(collection, "file_failures", state.file_failures)
		logger.info(
			f"Indexed {state.chunks_indexed} chunks from {len(state.processed)} files into '{collection}' "
			f"({result.failures} failures)"
		)
		return result

	@staticmethod
	def _check_cancelled(batch: SyncBatch) -> None:
		if batch.cancelled:
			msg = f"Sync {batch.id} was cancelled"
			raise SyncCancelledError(msg)

	async def _process_file(
		self, root: Path, collection: str, relative: str, modified: bool, state: _RunState, batch: SyncBatch
	) -> None:
		"""Chunk one file and feed its chunks into the batch buffer."""
		chunks = await self._chunk_file(root, relative)
		if chunks is None:
			state.failed.add(relative)
			state.file_failures += 1
			return

		if modified:
			await self.hybrid.remove_file(collection, relative, str(root))
		state.new_ids.setdefault(relative, [])
		for chunk in chunks:
			state.buffer.append(chunk)
			if len(state.buffer) >= self.batch_size:
				await self._flush_batch(collection, state, batch)
		state.processed.add(relative)

	async def _chunk_file(self, root: Path, relative: str) -> list[CodeChunk] | None:
		"""
		Read and chunk a file.

		Chunks are tagged with the codebase root so codebases sharing a
		collection keep separate keyword entries.

		Returns:
		    The chunks, an empty list for files that are skipped (binary or
		    unknown language), or None when the file could not be read or chunked.

		"""
		language = detect_language(relative)
		if language is Language.UNKNOWN:
			return []
		try:
			text = await asyncio.to_thread(read_source, root / relative)
		except IoError as e:
			logger.warning(f"Failed to read {relative}: {e}")
			return None
		except InvalidArgumentError as e:
			logger.info(f"Skipping {relative}: {e}")
			return []
		try:
			chunks = await asyncio.to_thread(self.chunker.chunk_code, text, relative, language)
		except Exception:
			logger.exception(f"Failed to chunk {relative}")
			return None
		codebase = str(root)
		return [replace(chunk, metadata={**chunk.metadata, "codebase": codebase}) for chunk in chunks]

	async def _embed(self, texts: Sequence[str]) -> list[Embedding]:
		"""Embed texts, backing off exponentially while the provider is rate limiting."""
		retrying = AsyncRetrying(
			retry=retry_if_exception_type(RateLimitError),
			wait=wait_exponential(multiplier=self.backoff_initial, max=self.backoff_max),
			stop=stop_after_attempt(self.retry_count + 1),
			before_sleep=before_sleep_log(logger, logging.WARNING),
			reraise=True,
		)
		embeddings: list[Embedding] = []
		async for attempt in retrying:
			with attempt:
				embeddings = await self.embedding_client.embed_batch(texts)
		if len(embeddings) != len(texts):
			msg = f"Embedding provider returned {len(embeddings)} vectors for {len(texts)} texts"
			raise EmbeddingError(msg)
		return embeddings

	async def _ensure_collection(self, collection: str) -> None:
		if not await self.vector_store.collection_exists(collection):
			dimensions = await asyncio.to_thread(self.embedding_client.dimensions)
			await self.vector_store.create_collection(collection, dimensions)

	async def _flush_batch(self, collection: str, state: _RunState, batch: SyncBatch) -> None:
		"""Embed and store the buffered chunks; a failure marks their files as failed."""
		self._check_cancelled(batch)
		chunks, state.buffer = state.buffer, []
		try:
			embeddings = await self._embed([chunk.content for chunk in chunks])
			if batch.cancelled:
				state.buffer = chunks
				self._check_cancelled(batch)
			await self._ensure_collection(collection)
			ids = await self.vector_store.insert_vectors(
				collection, [embedding.vector for embedding in embeddings], [chunk.to_metadata() for chunk in chunks]
			)
		except CodeScopeError as e:
			files = {chunk.file_path for chunk in chunks}
			logger.warning(f"Failed to index a batch of {len(chunks)} chunks from {len(files)} files: {e}")
			state.failed.update(files)
			state.batch_failures += 1
			return

		for chunk, vector_id in zip(chunks, ids, strict=True):
			state.new_ids[chunk.file_path].append(vector_id)
		await self.hybrid.index_chunks(collection, chunks)
		state.chunks_indexed += len(chunks)

	async def _finalize(
		self,
		collection: str,
		previous: CodebaseSnapshot | None,
		current: CodebaseSnapshot,
		changes: SnapshotChanges,
		state: _RunState,
	) -> None:
		"""Remove stale vectors, flush the store and commit the snapshot."""
		previous_ids = previous.vector_ids if previous is not None else {}
		exists = await self.vector_store.collection_exists(collection)

		# Vectors of files that did not fully index would be duplicated by the retry.
		partial = {path: state.new_ids.pop(path) for path in list(state.new_ids) if path in state.failed}
		orphans = [vector_id for ids in partial.values() for vector_id in ids]
		if orphans and exists:
			await self._delete_quietly(collection, orphans)
			for path in partial:
				await self.hybrid.remove_file(collection, path, current.root)

		stale_paths = sorted((changes.modified | changes.removed) - state.failed)
		stale = [vector_id for path in stale_paths for vector_id in previous_ids.get(path, [])]
		if stale and exists and not await self._delete_quietly(collection, stale):
			state.failed.update(changes.removed)
		for path in changes.removed:
			await self.hybrid.remove_file(collection, path, current.root)

		if exists:
			await self.vector_store.flush(collection)

		await asyncio.to_thread(
			self.snapshot_manager.commit, current, previous, state.failed, dict(state.new_ids), collection
		)

	async def _delete_quietly(self, collection: str, ids: list[str]) -> bool:
		try:
			await self.vector_store.delete_vectors(collection, ids)
		except CodeScopeError as e:
			logger.warning(f"Failed to delete {len(ids)} stale vectors from '{collection}': {e}")
			return False
		return True
