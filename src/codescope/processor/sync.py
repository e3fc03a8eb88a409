"""
Per-codebase debounce and single-flight sync slots.

Two triggers for the same codebase collapse into one run: the second either
falls inside the debounce window or finds the slot taken.

"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

from codescope.processor.models import SyncBatch
from codescope.utils.path_utils import canonical_key

if TYPE_CHECKING:
	from collections.abc import Awaitable, Callable
	from pathlib import Path

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SYNC_INTERVAL = 300.0
DEFAULT_DEBOUNCE_INTERVAL = 60.0


class SyncStatus(str, Enum):
	"""How a sync request was handled."""

	COMPLETED = "completed"
	DEBOUNCED = "debounced"
	IN_PROGRESS = "in_progress"


@dataclass(frozen=True)
class SyncOptions:
	"""Options for one sync request."""

	force: bool = False
	"""Run even if the codebase was synced within the debounce interval."""


@dataclass
class SyncOutcome(Generic[T]):
	"""Result of :meth:`SyncCoordinator.sync`."""

	status: SyncStatus
	value: T | None = None

	@property
	def performed(self) -> bool:
		"""Whether the sync callback ran."""
		return self.status is SyncStatus.COMPLETED


class SyncCoordinator:
	"""Track the last sync time and the active slot of every codebase."""

	def __init__(
		self,
		debounce_interval: float = DEFAULT_DEBOUNCE_INTERVAL,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		"""
		Initialize the coordinator.

		Args:
		    debounce_interval: Minimum seconds between effective syncs of one codebase.
		    clock: Monotonic time source.

		"""
		self.debounce_interval = debounce_interval
		self._clock = clock
		self._last_sync: dict[str, float] = {}
		self._active: dict[str, SyncBatch] = {}
		self._lock = asyncio.Lock()

	def should_debounce(self, root: str | Path) -> bool:
		"""Whether the codebase was synced less than ``debounce_interval`` seconds ago."""
		last = self._last_sync.get(canonical_key(root))
		if last is None:
			return False
		return self._clock() - last < self.debounce_interval

	async def acquire_slot(self, root: str | Path) -> SyncBatch | None:
		"""
		Take the codebase's sync slot.

		Returns:
		    A new batch, or None if another sync holds the slot.

		"""
		key = canonical_key(root)
		async with self._lock:
			if key in self._active:
				return None
			batch = SyncBatch(codebase_key=key)
			self._active[key] = batch
		logger.debug(f"Acquired sync slot {batch.id} for {key}")
		return batch

	async def release_slot(self, root: str | Path, batch: SyncBatch) -> None:
		"""Free the slot held by ``batch`` and record the sync time."""
		key = canonical_key(root)
		async with self._lock:
			if self._active.get(key) is batch:
				del self._active[key]
			self._last_sync[key] = self._clock()
		logger.debug(f"Released sync slot {batch.id} for {key}")

	def cancel(self, root: str | Path) -> bool:
		"""
		Ask the sync running for a codebase to stop.

		Returns:
		    Whether a sync was running.

		"""
		batch = self._active.get(canonical_key(root))
		if batch is None:
			return False
		batch.cancel()
		return True

	def active_batches(self) -> list[SyncBatch]:
		"""Slots currently held."""
		return list(self._active.values())

	def last_sync(self, root: str | Path) -> float | None:
		"""Clock reading of the codebase's last completed sync."""
		return self._last_sync.get(canonical_key(root))

	def reset(self, root: str | Path) -> None:
		"""Forget the codebase's last sync time."""
		self._last_sync.pop(canonical_key(root), None)

	async def sync(
		self,
		root: str | Path,
		options: SyncOptions,
		run: Callable[[SyncBatch], Awaitable[T]],
	) -> SyncOutcome[T]:
		"""
		Run ``run`` for a codebase unless debounced or already running.

		The slot is released on every exit path, including errors and
		cancellation.

		Args:
		    root: Codebase root.
		    options: Sync options.
		    run: Coroutine function performing the sync with the held batch.

		Returns:
		    The outcome, carrying ``run``'s return value when it ran.

		"""
		if not options.force and self.should_debounce(root):
			logger.info(f"Skipping sync of {root}: last sync was less than {self.debounce_interval}s ago")
			return SyncOutcome(SyncStatus.DEBOUNCED)

		batch = await self.acquire_slot(root)
		if batch is None:
			logger.info(f"Skipping sync of {root}: another sync is in progress")
			return SyncOutcome(SyncStatus.IN_PROGRESS)

		try:
			value = await run(batch)
		finally:
			await self.release_slot(root, batch)
		return SyncOutcome(SyncStatus.COMPLETED, value)
