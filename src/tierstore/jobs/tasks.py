"""Job handlers for storage follow-up work.

The storage facade dispatches four kinds of work:
- replicate_store: copy content to delayed layers
- replicate_delete: remove content from delayed layers
- replicate_change_type: move content between type scopes on delayed layers
- evict_caches: trim cache layers that exceed their size limit

All handlers are idempotent and safe to retry. A replicate_store whose source
content has vanished (deleted before replication ran) is discarded rather
than retried.

Example:
    from tierstore.jobs.tasks import register_storage_handlers

    worker = JobWorker()
    register_storage_handlers(worker, storage)
    await worker.run()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from tierstore.dispatch import (
    EVICT_CACHES,
    REPLICATE_CHANGE_TYPE,
    REPLICATE_DELETE,
    REPLICATE_STORE,
)
from tierstore.errors import NotFoundError
from tierstore.jobs.worker import DiscardJob, JobHandler, JobWorker, job_handler

if TYPE_CHECKING:
    from tierstore.jobs.queue import Job
    from tierstore.storage import Storage

logger = logging.getLogger(__name__)


def build_storage_handlers(storage: Storage) -> dict[str, JobHandler]:
    """Create the handlers for every storage task, bound to ``storage``."""

    @job_handler(REPLICATE_STORE)
    async def handle_replicate_store(job: Job) -> dict[str, Any]:
        """Copy content to delayed layers.

        Payload:
            type: Type scope
            key: Content key
        """
        type_, key = job.payload["type"], job.payload["key"]
        try:
            await storage.delayed_store(type_, key)
        except NotFoundError as exc:
            raise DiscardJob(f"Source content {type_}/{key} no longer exists") from exc
        return {"type": type_, "key": key}

    @job_handler(REPLICATE_DELETE)
    async def handle_replicate_delete(job: Job) -> dict[str, Any]:
        """Remove content from delayed layers.

        Payload:
            type: Type scope
            key: Content key
        """
        type_, key = job.payload["type"], job.payload["key"]
        await storage.delayed_delete(type_, key)
        return {"type": type_, "key": key}

    @job_handler(REPLICATE_CHANGE_TYPE)
    async def handle_replicate_change_type(job: Job) -> dict[str, Any]:
        """Move content between type scopes on delayed layers.

        Payload:
            prev_type: Previous type scope
            new_type: New type scope
            key: Content key
        """
        prev_type = job.payload["prev_type"]
        new_type = job.payload["new_type"]
        key = job.payload["key"]
        await storage.delayed_store(new_type, key)
        if prev_type != new_type:
            await storage.delayed_delete(prev_type, key)
        return {"prev_type": prev_type, "new_type": new_type, "key": key}

    @job_handler(EVICT_CACHES)
    async def handle_evict_caches(job: Job) -> dict[str, Any]:
        """Evict replicated entries from over-budget cache layers.

        Returns:
            evicted: Number of entries evicted
            freed_bytes: Bytes freed
        """
        evicted = await storage.evict_caches()
        return {
            "evicted": len(evicted),
            "freed_bytes": sum(entry.size for entry in evicted),
        }

    return {
        REPLICATE_STORE: handle_replicate_store,
        REPLICATE_DELETE: handle_replicate_delete,
        REPLICATE_CHANGE_TYPE: handle_replicate_change_type,
        EVICT_CACHES: handle_evict_caches,
    }


def register_storage_handlers(worker: JobWorker, storage: Storage) -> None:
    """Register all storage handlers with a worker."""
    handlers = build_storage_handlers(storage)
    for task, handler in handlers.items():
        worker.register_handler(task, handler)

    logger.info(f"Registered {len(handlers)} storage handlers")
