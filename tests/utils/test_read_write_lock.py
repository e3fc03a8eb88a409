"""Tests for the coroutine readers-writer lock."""

import asyncio

import pytest

from codescope.utils.async_utils import ReadWriteLock


@pytest.mark.unit
class TestReadWriteLock:
	"""Tests for shared and exclusive holds."""

	async def test_readers_share_the_lock(self) -> None:
		"""Several readers hold the lock at the same time."""
		lock = ReadWriteLock()

		async with lock.read(), lock.read():
			assert lock.readers == 2
			assert not lock.write_locked

		assert lock.readers == 0

	async def test_writer_waits_for_readers(self) -> None:
		"""A writer only enters once all readers have left."""
		lock = ReadWriteLock()
		events: list[str] = []

		async def writer() -> None:
			async with lock.write():
				events.append("write")

		async with lock.read():
			task = asyncio.create_task(writer())
			await asyncio.sleep(0.01)
			events.append("read done")

		await task

		assert events == ["read done", "write"]
		assert not lock.write_locked

	async def test_writer_excludes_readers(self) -> None:
		"""Readers wait while a writer holds the lock."""
		lock = ReadWriteLock()
		events: list[str] = []

		async def reader() -> None:
			async with lock.read():
				events.append("read")

		async with lock.write():
			assert lock.write_locked
			task = asyncio.create_task(reader())
			await asyncio.sleep(0.01)
			events.append("write done")

		await task

		assert events == ["write done", "read"]

	async def test_waiting_writer_blocks_new_readers(self) -> None:
		"""New readers queue behind a waiting writer."""
		lock = ReadWriteLock()
		events: list[str] = []

		async def writer() -> None:
			async with lock.write():
				events.append("write")

		async def late_reader() -> None:
			async with lock.read():
				events.append("late read")

		async with lock.read():
			writer_task = asyncio.create_task(writer())
			await asyncio.sleep(0.01)
			reader_task = asyncio.create_task(late_reader())
			await asyncio.sleep(0.01)
			assert events == []

		await asyncio.gather(writer_task, reader_task)

		assert events == ["write", "late read"]

	async def test_released_on_error(self) -> None:
		"""An exception inside the block still releases the lock."""
		lock = ReadWriteLock()

		with pytest.raises(RuntimeError):
			async with lock.write():
				raise RuntimeError

		async with lock.read():
			assert lock.readers == 1
