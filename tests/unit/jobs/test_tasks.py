"""Tests for the storage job handlers."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from tierstore.backends.local import LocalConnection
from tierstore.dispatch import STORAGE_TASKS
from tierstore.jobs.queue import Job
from tierstore.jobs.tasks import build_storage_handlers, register_storage_handlers
from tierstore.jobs.worker import DiscardJob, JobWorker
from tierstore.layer import Layer


@pytest.fixture
def stack(local: LocalConnection, memory, make_storage):
    prod = Layer(local, path="prod")
    archive = Layer(memory("archive"), delayed=True)
    cache = Layer(local, path="cache", cache=5)
    return make_storage(cache, prod, archive), prod, archive, cache


def _job(task: str, **payload) -> Job:
    return Job(id="job-1", task=task, payload=payload, attempts=1)


class TestStorageHandlers:
    """Tests for build_storage_handlers."""

    def test_covers_every_task(self, stack) -> None:
        """A handler exists for each storage task."""
        storage, *_ = stack

        assert set(build_storage_handlers(storage)) == set(STORAGE_TASKS)

    def test_register(self, stack) -> None:
        """Registering binds every handler to the worker."""
        storage, *_ = stack
        worker = JobWorker(queue=AsyncMock())

        register_storage_handlers(worker, storage)

        assert set(worker._handlers) == set(STORAGE_TASKS)

    @pytest.mark.asyncio
    async def test_replicate_store(self, stack) -> None:
        """replicate_store copies content to delayed layers."""
        storage, _, archive, _ = stack
        handlers = build_storage_handlers(storage)
        key = await storage.store("docs", b"hello")

        result = await handlers["replicate_store"](_job("replicate_store", type="docs", key=key))

        assert result == {"type": "docs", "key": key}
        assert await archive.exists("docs", key)

    @pytest.mark.asyncio
    async def test_replicate_store_discards_vanished_content(self, stack) -> None:
        """Content deleted before replication ran is discarded."""
        storage, *_ = stack
        handlers = build_storage_handlers(storage)
        key = await storage.store("docs", b"hello")
        await storage.delete("docs", key)

        with pytest.raises(DiscardJob):
            await handlers["replicate_store"](_job("replicate_store", type="docs", key=key))

    @pytest.mark.asyncio
    async def test_replicate_delete(self, stack) -> None:
        """replicate_delete removes content from delayed layers."""
        storage, _, archive, _ = stack
        handlers = build_storage_handlers(storage)
        key = await storage.store("docs", b"hello")
        await storage.delayed_store("docs", key)

        await handlers["replicate_delete"](_job("replicate_delete", type="docs", key=key))

        assert not await archive.exists("docs", key)

    @pytest.mark.asyncio
    async def test_replicate_change_type(self, stack) -> None:
        """replicate_change_type moves content on delayed layers."""
        storage, _, archive, _ = stack
        handlers = build_storage_handlers(storage)
        key = await storage.store("drafts", b"hello")
        await storage.delayed_store("drafts", key)
        await storage.change_type("drafts", "docs", key)

        await handlers["replicate_change_type"](
            _job("replicate_change_type", prev_type="drafts", new_type="docs", key=key)
        )

        assert await archive.exists("docs", key)
        assert not await archive.exists("drafts", key)

    @pytest.mark.asyncio
    async def test_replicate_change_type_same_type(self, stack) -> None:
        """A same-type change leaves the delayed copy in place."""
        storage, _, archive, _ = stack
        handlers = build_storage_handlers(storage)
        key = await storage.store("docs", b"hello")
        await storage.delayed_store("docs", key)

        await handlers["replicate_change_type"](
            _job("replicate_change_type", prev_type="docs", new_type="docs", key=key)
        )

        assert await archive.exists("docs", key)

    @pytest.mark.asyncio
    async def test_evict_caches(self, stack) -> None:
        """evict_caches reports what it freed."""
        storage, prod, _, cache = stack
        handlers = build_storage_handlers(storage)
        key = await storage.store("docs", b"0123456789")

        result = await handlers["evict_caches"](_job("evict_caches"))

        assert result == {"evicted": 1, "freed_bytes": 10}
        assert not await cache.exists("docs", key)
        assert await prod.exists("docs", key)
