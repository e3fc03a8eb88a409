"""
Hybrid ranking: semantic similarity fused with BM25 keyword relevance.

Each collection gets its own :class:`HybridSearchEngine` holding the
indexed chunks and a BM25 scorer; :class:`HybridSearchProvider` owns the
engines and serialises writers against readers per collection.

"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from codescope.processor.models import CodeChunk, HybridSearchResult, Language, SearchResult
from codescope.processor.search.bm25 import BM25Params, BM25Scorer
from codescope.utils.async_utils import ReadWriteLock

if TYPE_CHECKING:
	from collections.abc import Iterable, Sequence

logger = logging.getLogger(__name__)

DEFAULT_BM25_WEIGHT = 0.4
DEFAULT_SEMANTIC_WEIGHT = 0.6


@dataclass(frozen=True)
class HybridWeights:
	"""
	Weights for fusing the two scores.

	Negative weights are clamped to zero. Weights are not renormalised, so
	they only need to sum to roughly one.

	"""

	bm25_weight: float = DEFAULT_BM25_WEIGHT
	semantic_weight: float = DEFAULT_SEMANTIC_WEIGHT

	def __post_init__(self) -> None:
		"""Clamp weights to be non-negative."""
		object.__setattr__(self, "bm25_weight", max(0.0, float(self.bm25_weight)))
		object.__setattr__(self, "semantic_weight", max(0.0, float(self.semantic_weight)))

	@classmethod
	def semantic_only(cls) -> HybridWeights:
		"""Weights that ignore keyword relevance."""
		return cls(bm25_weight=0.0, semantic_weight=1.0)

	@classmethod
	def bm25_only(cls) -> HybridWeights:
		"""Weights that ignore semantic similarity."""
		return cls(bm25_weight=1.0, semantic_weight=0.0)


def normalize_bm25(raw: float) -> float:
	"""Squash a raw BM25 score into [0, 1) with a sigmoid; non-positive scores map to 0."""
	if raw <= 0:
		return 0.0
	return 1.0 / (1.0 + math.exp(-raw))


def semantic_only_results(candidates: Sequence[SearchResult], limit: int) -> list[HybridSearchResult]:
	"""Pass the first ``limit`` candidates through with their semantic scores."""
	return [
		HybridSearchResult(result=candidate, bm25_score=0.0, semantic_score=candidate.score, hybrid_score=candidate.score)
		for candidate in candidates[:limit]
	]


def chunk_from_record(record: SearchResult) -> CodeChunk | None:
	"""
	Rebuild a chunk from a stored vector record.

	Returns None when the record lacks the fields needed for keyword
	indexing (content, file path, start line).

	"""
	metadata = record.metadata
	if not record.content or not record.file_path or record.start_line < 1:
		return None
	try:
		end_line = max(int(metadata.get("end_line", record.start_line)), record.start_line)
		language = Language(metadata.get("language", Language.UNKNOWN.value))
	except (TypeError, ValueError):
		end_line = record.start_line
		language = Language.UNKNOWN
	return CodeChunk(
		id=str(metadata.get("chunk_id", record.id)),
		content=record.content,
		file_path=record.file_path,
		start_line=record.start_line,
		end_line=end_line,
		language=language,
		metadata={"codebase": metadata["codebase"]} if metadata.get("codebase") else {},
	)


class HybridSearchEngine:
	"""Keyword index and fusion logic for one collection."""

	def __init__(self, weights: HybridWeights | None = None, params: BM25Params | None = None) -> None:
		"""
		Initialize an empty engine.

		Args:
		    weights: Fusion weights.
		    params: BM25 parameters.

		"""
		self.weights = weights or HybridWeights()
		self.params = params or BM25Params()
		self.documents: list[CodeChunk] = []
		self._key_index: dict[str, int] = {}
		self.scorer: BM25Scorer | None = None

	@property
	def document_count(self) -> int:
		"""Number of indexed chunks."""
		return len(self.documents)

	def _rebuild(self) -> None:
		self._key_index = {document.key: i for i, document in enumerate(self.documents)}
		self.scorer = BM25Scorer(self.documents, self.params) if self.documents else None

	def add_documents(self, chunks: Iterable[CodeChunk]) -> int:
		"""
		Index chunks, skipping keys that are already present.

		Returns:
		    Number of chunks actually added.

		"""
		added = 0
		for chunk in chunks:
			if chunk.key in self._key_index:
				continue
			self._key_index[chunk.key] = len(self.documents)
			self.documents.append(chunk)
			added += 1
		if added:
			self._rebuild()
		return added

	def remove_file(self, file_path: str, codebase: str | None = None) -> int:
		"""
		Drop every chunk of a file.

		Args:
		    file_path: Path relative to the codebase root.
		    codebase: Restrict removal to chunks of this codebase root.

		Returns:
		    Number of chunks removed.

		"""
		before = len(self.documents)
		self.documents = [
			document
			for document in self.documents
			if document.file_path != file_path or (codebase is not None and document.codebase != codebase)
		]
		removed = before - len(self.documents)
		if removed:
			self._rebuild()
		return removed

	def clear(self) -> None:
		"""Drop all indexed chunks."""
		self.documents = []
		self._rebuild()

	def search(self, query: str, candidates: Sequence[SearchResult], limit: int) -> list[HybridSearchResult]:
		"""
		Rerank semantic candidates.

		Args:
		    query: Original query text.
		    candidates: Results from the vector store, best first.
		    limit: Maximum number of results to return.

		Returns:
		    Up to ``limit`` results ordered by fused score, ties broken by id.

		"""
		if self.scorer is None:
			return semantic_only_results(candidates, limit)

		tokens = self.scorer.tokenize(query)
		fused = []
		for candidate in candidates:
			index = self._key_index.get(candidate.key)
			if index is None:
				bm25_score = 0.0
			else:
				bm25_score = normalize_bm25(self.scorer.score_with_tokens(self.documents[index], tokens))
			hybrid_score = self.weights.bm25_weight * bm25_score + self.weights.semantic_weight * candidate.score
			fused.append(
				HybridSearchResult(
					result=candidate,
					bm25_score=bm25_score,
					semantic_score=candidate.score,
					hybrid_score=hybrid_score,
				)
			)

		fused.sort(key=lambda r: (-r.hybrid_score, r.result.id))
		return fused[:limit]

	def stats(self) -> dict[str, Any]:
		"""Index statistics for status reports."""
		stats: dict[str, Any] = {
			"total_documents": 0,
			"unique_terms": 0,
			"average_doc_length": 0.0,
			"bm25_k1": self.params.k1,
			"bm25_b": self.params.b,
		}
		if self.scorer is not None:
			stats.update(self.scorer.stats())
		stats["bm25_weight"] = self.weights.bm25_weight
		stats["semantic_weight"] = self.weights.semantic_weight
		return stats


class HybridSearchProvider:
	"""Per-collection hybrid engines guarded by readers-writer locks."""

	def __init__(
		self,
		weights: HybridWeights | None = None,
		params: BM25Params | None = None,
		enabled: bool = True,
	) -> None:
		"""
		Initialize the provider.

		Args:
		    weights: Fusion weights for every collection.
		    params: BM25 parameters for every collection.
		    enabled: When False, searches return semantic order unchanged.

		"""
		self.weights = weights or HybridWeights()
		self.params = params or BM25Params()
		self.enabled = enabled
		self._engines: dict[str, HybridSearchEngine] = {}
		self._locks: dict[str, ReadWriteLock] = {}

	def _lock(self, collection: str) -> ReadWriteLock:
		if collection not in self._locks:
			self._locks[collection] = ReadWriteLock()
		return self._locks[collection]

	def _engine(self, collection: str) -> HybridSearchEngine:
		if collection not in self._engines:
			self._engines[collection] = HybridSearchEngine(self.weights, self.params)
		return self._engines[collection]

	def has_documents(self, collection: str) -> bool:
		"""Whether any chunk is indexed for the collection."""
		engine = self._engines.get(collection)
		return engine is not None and engine.document_count > 0

	def document_count(self, collection: str) -> int:
		"""Number of chunks indexed for the collection."""
		engine = self._engines.get(collection)
		return engine.document_count if engine is not None else 0

	async def index_chunks(self, collection: str, chunks: Sequence[CodeChunk]) -> int:
		"""Add chunks to a collection's keyword index."""
		if not chunks:
			return 0
		async with self._lock(collection).write():
			added = await asyncio.to_thread(self._engine(collection).add_documents, chunks)
		logger.debug(f"Indexed {added} chunks for keyword search in '{collection}'")
		return added

	async def remove_file(self, collection: str, file_path: str, codebase: str | None = None) -> int:
		"""
		Remove a file's chunks from a collection's keyword index.

		Args:
		    collection: Collection to update.
		    file_path: Path of the file relative to its codebase root.
		    codebase: Only remove chunks of this codebase; any codebase when None.

		Returns:
		    Number of chunks removed. 0 when the collection has no keyword index.

		"""
		if collection not in self._engines:
			return 0
		async with self._lock(collection).write():
			engine = self._engines.get(collection)
			if engine is None:
				return 0
			return await asyncio.to_thread(engine.remove_file, file_path, codebase)

	async def rebuild_from(self, collection: str, chunks: Sequence[CodeChunk]) -> int:
		"""Replace a collection's keyword index with ``chunks``."""
		async with self._lock(collection).write():
			engine = self._engine(collection)
			engine.clear()
			added = await asyncio.to_thread(engine.add_documents, chunks)
		logger.info(f"Rebuilt keyword index for '{collection}' with {added} chunks")
		return added

	async def clear_collection(self, collection: str) -> None:
		"""Drop all keyword state for a collection."""
		async with self._lock(collection).write():
			self._engines.pop(collection, None)

	async def search(
		self, collection: str, query: str, candidates: Sequence[SearchResult], limit: int
	) -> list[HybridSearchResult]:
		"""Rerank candidates for a collection, falling back to semantic order."""
		if not self.enabled or collection not in self._engines:
			return semantic_only_results(candidates, limit)
		async with self._lock(collection).read():
			engine = self._engines.get(collection)
			if engine is None:
				return semantic_only_results(candidates, limit)
			return engine.search(query, candidates, limit)

	def stats(self, collection: str) -> dict[str, Any]:
		"""Keyword index statistics for a collection."""
		engine = self._engines.get(collection) or HybridSearchEngine(self.weights, self.params)
		return engine.stats()
