"""Tracking of running indexing operations and cumulative counters."""

from __future__ import annotations

import time
import uuid
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any

COUNTER_NAMES = (
	"syncs_performed",
	"syncs_skipped",
	"files_indexed",
	"chunks_indexed",
	"batch_failures",
	"file_failures",
	"searches",
)


@dataclass
class Operation:
	"""One running indexing operation."""

	codebase: str
	collection: str
	id: str = field(default_factory=lambda: uuid.uuid4().hex)
	status: str = "scanning"
	started_at: float = field(default_factory=time.time)
	files_total: int = 0
	files_processed: int = 0
	chunks_indexed: int = 0
	failures: int = 0


class OperationTracker:
	"""In-memory registry of active operations and counters, keyed by collection."""

	def __init__(self) -> None:
		"""Initialize an empty tracker."""
		self._active: dict[str, Operation] = {}
		self._counters: dict[str, Counter[str]] = {}

	def start(self, codebase: str, collection: str) -> Operation:
		"""Register a new operation."""
		operation = Operation(codebase=codebase, collection=collection)
		self._active[operation.id] = operation
		return operation

	def finish(self, operation: Operation) -> None:
		"""Remove a finished operation."""
		self._active.pop(operation.id, None)

	def increment(self, collection: str, name: str, amount: int = 1) -> None:
		"""Add to a counter of a collection."""
		if name not in COUNTER_NAMES:
			msg = f"Unknown counter: {name}"
			raise KeyError(msg)
		self._counters.setdefault(collection, Counter())[name] += amount

	def counters(self, collection: str | None = None) -> dict[str, int]:
		"""Counters of one collection, or summed across all collections."""
		if collection is not None:
			source = self._counters.get(collection, Counter())
		else:
			source = sum(self._counters.values(), Counter())
		return {name: source.get(name, 0) for name in COUNTER_NAMES}

	def reset(self, collection: str) -> None:
		"""Zero a collection's counters."""
		self._counters.pop(collection, None)

	def active_operations(self, collection: str | None = None) -> list[Operation]:
		"""Running operations, optionally limited to one collection."""
		return [op for op in self._active.values() if collection is None or op.collection == collection]

	def snapshot(self, collection: str | None = None) -> dict[str, Any]:
		"""Plain-dict view for status reports."""
		return {
			"active_operations": [asdict(op) for op in self.active_operations(collection)],
			"counters": self.counters(collection),
		}
