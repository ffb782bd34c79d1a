"""Contract between the storage facade and the background job system.

The facade never performs delayed replication or cache eviction inline. It
describes the work (task name and payload) and hands it to a dispatcher,
which executes it out of band with at-least-once semantics.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

REPLICATE_STORE = "replicate_store"
REPLICATE_DELETE = "replicate_delete"
REPLICATE_CHANGE_TYPE = "replicate_change_type"
EVICT_CACHES = "evict_caches"

STORAGE_TASKS = (REPLICATE_STORE, REPLICATE_DELETE, REPLICATE_CHANGE_TYPE, EVICT_CACHES)


@runtime_checkable
class JobDispatcher(Protocol):
    """Anything that can schedule a unit of work by task name."""

    async def dispatch(self, task: str, payload: dict[str, Any]) -> str:
        """Schedule ``task`` with ``payload`` and return a job identifier."""
        ...
