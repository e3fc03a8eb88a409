"""In-process vector store backed by numpy arrays."""

from __future__ import annotations

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np

from codescope.errors import InvalidArgumentError, IoError, NotFoundError
from codescope.processor.models import SearchResult
from codescope.processor.storage.base import DistanceMetric, VectorStore, euclidean_score

if TYPE_CHECKING:
	from collections.abc import Sequence

logger = logging.getLogger(__name__)

COLLECTION_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,254}$")
FILTER_CLAUSE_PATTERN = re.compile(r'^\s*(\w+)\s*==\s*(?:"([^"]*)"|\'([^\']*)\'|(-?\d+))\s*$')
STORE_FORMAT_VERSION = 1


def validate_collection_name(name: str) -> None:
	"""
	Check a collection name.

	Raises:
	    InvalidArgumentError: If the name is not an identifier of at most 255 characters.

	"""
	if not COLLECTION_NAME_PATTERN.match(name):
		msg = f"Invalid collection name {name!r}: use letters, digits and underscores, starting with a letter"
		raise InvalidArgumentError(msg)


def parse_filter(expression: str) -> list[tuple[str, Any]]:
	"""
	Parse a filter of ``field == value`` clauses joined by ``and``.

	Values are double- or single-quoted strings or integers, e.g.
	``file_path == "src/main.rs" and start_line == 10``.

	Raises:
	    InvalidArgumentError: If the expression cannot be parsed.

	"""
	clauses = []
	for part in re.split(r"\s+and\s+", expression.strip()):
		match = FILTER_CLAUSE_PATTERN.match(part)
		if match is None:
			msg = f"Unsupported filter expression: {expression!r}"
			raise InvalidArgumentError(msg)
		name, double_quoted, single_quoted, number = match.groups()
		if number is not None:
			clauses.append((name, int(number)))
		else:
			clauses.append((name, double_quoted if double_quoted is not None else single_quoted))
	return clauses


@dataclass
class _Collection:
	dimensions: int
	metric: DistanceMetric
	ids: list[str] = field(default_factory=list)
	metadata: list[dict[str, Any]] = field(default_factory=list)
	vectors: np.ndarray = field(init=False)

	def __post_init__(self) -> None:
		self.vectors = np.empty((0, self.dimensions), dtype=np.float32)


class InMemoryVectorStore(VectorStore):
	"""
	Keep every collection as a numpy matrix in memory.

	When ``persist_dir`` is set, :meth:`flush` writes each collection to disk
	and existing collections are loaded at construction, so indexes survive
	restarts without an external database.

	"""

	def __init__(self, metric: DistanceMetric = DistanceMetric.COSINE, persist_dir: Path | None = None) -> None:
		"""
		Initialize the store.

		Args:
		    metric: Similarity metric for collections created by this store.
		    persist_dir: Directory to save collections in, or None to stay in memory.

		"""
		self.metric = DistanceMetric(metric)
		self.persist_dir = persist_dir
		self._collections: dict[str, _Collection] = {}
		if persist_dir is not None:
			self._load_all(persist_dir)

	def _get(self, name: str) -> _Collection:
		collection = self._collections.get(name)
		if collection is None:
			msg = f"Collection '{name}' does not exist"
			raise NotFoundError(msg)
		return collection

	async def create_collection(self, name: str, dimensions: int) -> None:
		"""Create an empty collection. Creating an existing collection with the same size is a no-op."""
		validate_collection_name(name)
		if dimensions <= 0:
			msg = f"Collection dimensions must be positive, got {dimensions}"
			raise InvalidArgumentError(msg)
		existing = self._collections.get(name)
		if existing is not None:
			if existing.dimensions != dimensions:
				msg = f"Collection '{name}' already exists with {existing.dimensions} dimensions"
				raise InvalidArgumentError(msg)
			return
		self._collections[name] = _Collection(dimensions=dimensions, metric=self.metric)
		logger.info(f"Created collection '{name}' ({dimensions} dimensions, {self.metric.value})")

	async def delete_collection(self, name: str) -> None:
		"""Drop a collection and its files on disk."""
		self._get(name)
		del self._collections[name]
		if self.persist_dir is not None:
			for suffix in (".json", ".npy"):
				(self.persist_dir / f"{name}{suffix}").unlink(missing_ok=True)
		logger.info(f"Deleted collection '{name}'")

	async def collection_exists(self, name: str) -> bool:
		"""Whether the collection exists."""
		return name in self._collections

	async def insert_vectors(
		self, collection: str, vectors: Sequence[Sequence[float]], metadata: Sequence[dict[str, Any]]
	) -> list[str]:
		"""Append vectors, assigning random hex ids."""
		target = self._get(collection)
		self._check_insert(vectors, metadata, target.dimensions)
		if not vectors:
			return []
		ids = [uuid.uuid4().hex for _ in vectors]
		target.vectors = np.vstack([target.vectors, np.asarray(vectors, dtype=np.float32)])
		target.ids.extend(ids)
		target.metadata.extend(dict(m) for m in metadata)
		return ids

	def _scores(self, target: _Collection, query: np.ndarray) -> np.ndarray:
		matrix = target.vectors
		if target.metric is DistanceMetric.DOT:
			return matrix @ query
		if target.metric is DistanceMetric.EUCLIDEAN:
			return euclidean_score(np.linalg.norm(matrix - query, axis=1))
		norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
		with np.errstate(divide="ignore", invalid="ignore"):
			scores = np.where(norms > 0, (matrix @ query) / norms, 0.0)
		return scores

	async def search_similar(
		self, collection: str, query_vector: Sequence[float], k: int, filter: str | None = None
	) -> list[SearchResult]:
		"""Brute-force nearest neighbours, ties broken by insertion order."""
		target = self._get(collection)
		if len(query_vector) != target.dimensions:
			msg = f"Query vector has {len(query_vector)} dimensions but collection '{collection}' expects {target.dimensions}"
			raise InvalidArgumentError(msg)
		if k <= 0 or not target.ids:
			return []

		scores = self._scores(target, np.asarray(query_vector, dtype=np.float32))
		candidates = np.argsort(-scores, kind="stable")
		clauses = parse_filter(filter) if filter else []

		results = []
		for index in candidates:
			record = target.metadata[index]
			if any(record.get(name) != value for name, value in clauses):
				continue
			results.append(SearchResult.from_metadata(target.ids[index], float(scores[index]), record))
			if len(results) >= k:
				break
		return results

	async def delete_vectors(self, collection: str, ids: Sequence[str]) -> None:
		"""Remove vectors by id."""
		target = self._get(collection)
		doomed = set(ids)
		keep = [i for i, vector_id in enumerate(target.ids) if vector_id not in doomed]
		if len(keep) == len(target.ids):
			return
		target.vectors = target.vectors[keep]
		target.ids = [target.ids[i] for i in keep]
		target.metadata = [target.metadata[i] for i in keep]

	async def get_vectors_by_ids(self, collection: str, ids: Sequence[str]) -> list[SearchResult]:
		"""Fetch records by id, in the order requested."""
		target = self._get(collection)
		positions = {vector_id: i for i, vector_id in enumerate(target.ids)}
		return [
			SearchResult.from_metadata(vector_id, 1.0, target.metadata[positions[vector_id]])
			for vector_id in ids
			if vector_id in positions
		]

	async def list_vectors(self, collection: str, limit: int) -> list[SearchResult]:
		"""Return the first ``limit`` records."""
		target = self._get(collection)
		return [
			SearchResult.from_metadata(vector_id, 1.0, record)
			for vector_id, record in zip(target.ids[:limit], target.metadata[:limit], strict=True)
		]

	async def count(self, collection: str) -> int:
		"""Number of vectors in a collection."""
		return len(self._get(collection).ids)

	async def flush(self, collection: str) -> None:
		"""Write the collection to ``persist_dir`` when persistence is enabled."""
		target = self._get(collection)
		if self.persist_dir is None:
			return
		try:
			self.persist_dir.mkdir(parents=True, exist_ok=True)
			np.save(self.persist_dir / f"{collection}.npy", target.vectors)
			record = {
				"version": STORE_FORMAT_VERSION,
				"dimensions": target.dimensions,
				"metric": target.metric.value,
				"ids": target.ids,
				"metadata": target.metadata,
			}
			(self.persist_dir / f"{collection}.json").write_text(json.dumps(record), encoding="utf-8")
		except OSError as e:
			msg = f"Failed to persist collection '{collection}': {e}"
			raise IoError(msg) from e

	def _load_all(self, persist_dir: Path) -> None:
		if not persist_dir.is_dir():
			return
		for record_path in sorted(persist_dir.glob("*.json")):
			name = record_path.stem
			try:
				record = json.loads(record_path.read_text(encoding="utf-8"))
				if record.get("version") != STORE_FORMAT_VERSION:
					logger.warning(f"Ignoring collection file {record_path} with unknown version")
					continue
				collection = _Collection(
					dimensions=int(record["dimensions"]),
					metric=DistanceMetric(record["metric"]),
					ids=list(record["ids"]),
					metadata=list(record["metadata"]),
				)
				vectors = np.load(persist_dir / f"{name}.npy")
				if vectors.shape != (len(collection.ids), collection.dimensions):
					logger.warning(f"Ignoring collection '{name}': vector file does not match its records")
					continue
				collection.vectors = vectors.astype(np.float32)
				self._collections[name] = collection
				logger.debug(f"Loaded collection '{name}' with {len(collection.ids)} vectors")
			except (OSError, ValueError, KeyError) as e:
				logger.warning(f"Failed to load collection from {record_path}: {e}")
