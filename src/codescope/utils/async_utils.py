"""Asyncio synchronisation helpers."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
	from collections.abc import AsyncIterator


class ReadWriteLock:
	"""
	Readers-writer lock for coroutines.

	Any number of readers may hold the lock at once; a writer waits for them
	to drain and holds it exclusively. Waiting writers block new readers so a
	steady stream of searches cannot starve re-indexing.

	"""

	def __init__(self) -> None:
		"""Initialize an unlocked lock."""
		self._condition = asyncio.Condition()
		self._readers = 0
		self._writer = False
		self._waiting_writers = 0

	@property
	def readers(self) -> int:
		"""Number of readers currently holding the lock."""
		return self._readers

	@property
	def write_locked(self) -> bool:
		"""Whether a writer currently holds the lock."""
		return self._writer

	@asynccontextmanager
	async def read(self) -> AsyncIterator[None]:
		"""Hold the lock for shared reading."""
		async with self._condition:
			await self._condition.wait_for(lambda: not self._writer and self._waiting_writers == 0)
			self._readers += 1
		try:
			yield
		finally:
			async with self._condition:
				self._readers -= 1
				if self._readers == 0:
					self._condition.notify_all()

	@asynccontextmanager
	async def write(self) -> AsyncIterator[None]:
		"""Hold the lock exclusively."""
		async with self._condition:
			self._waiting_writers += 1
			try:
				await self._condition.wait_for(lambda: not self._writer and self._readers == 0)
			finally:
				self._waiting_writers -= 1
				self._condition.notify_all()
			self._writer = True
		try:
			yield
		finally:
			async with self._condition:
				self._writer = False
				self._condition.notify_all()
