"""Storage facade.

This is the interface for interacting with the storage layers.

All operations are scoped by a type string. Content is stored with the SHA-1
digest of its bytes as key, which deduplicates content per type scope. Hash
collisions are treated as identical content and never overwritten.

Write paths (store, delete, change_type) require at least one immediate,
writeable layer and surface per-layer failures to the caller. Read paths
(exists, get, file_path) and the eviction safety check isolate per-layer
failures: they are logged and counted as misses for that layer only.

Delayed replication and cache eviction are never performed inline; they are
handed to a JobDispatcher.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO

from tierstore.backends.base import StoredObject
from tierstore.content import Content, StoredContent, as_content
from tierstore.dispatch import (
    EVICT_CACHES,
    REPLICATE_CHANGE_TYPE,
    REPLICATE_DELETE,
    REPLICATE_STORE,
    JobDispatcher,
)
from tierstore.errors import NoLayersError, NotFoundError
from tierstore.layer import CachedFileEntry, Layer
from tierstore.layers import Layers, raise_first_error
from tierstore.observability.metrics import record_eviction, record_layer_error, record_read_repair
from tierstore.reconciliation import DEFAULT_BATCH_SIZE, RecordSource

logger = logging.getLogger(__name__)


class Storage:
    """Orchestrates store, retrieval and replication across layers.

    Example:
        storage = Storage(layers, dispatcher=JobQueue())
        key = await storage.store("documents", b"foobar")
        # => "8843d7f92416211de9ebb963ff4ce28125932878"
        stored = await storage.get("documents", key)
    """

    def __init__(
        self,
        layers: Layers,
        dispatcher: JobDispatcher,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        eviction_margin: float = 0.0,
    ) -> None:
        """Initialize the facade.

        Args:
            layers: Layer collection, configured once at startup
            dispatcher: Receives delayed replication and eviction work
            batch_size: Number of record hashes checked per reconciliation batch
            eviction_margin: Fraction of the cache limit to free below the
                limit once eviction runs (0 stops exactly at the limit)
        """
        self.layers = layers
        self.dispatcher = dispatcher
        self.batch_size = batch_size
        self.eviction_margin = eviction_margin

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def store(self, type: str, content: bytes | BinaryIO | StoredObject | Content) -> str:
        """Store content and return its key.

        Writes to every immediate writeable layer before returning. Schedules
        replication if delayed layers exist and eviction if cache layers exist.

        Raises:
            NoLayersError: If no immediate writeable layer is registered
        """
        targets = self._require_writeable_layers()
        content = as_content(content)
        key = content.digest()

        await self._store_in(targets, type, key, content)

        if self.layers.delayed.any_writeable:
            await self.dispatcher.dispatch(REPLICATE_STORE, {"type": type, "key": key})
        await self._schedule_eviction()
        return key

    async def exists(self, type: str, key: str) -> bool:
        """Return True if the key exists in any layer.

        Raises:
            NoLayersError: If no layers are registered
        """
        self._require_layers()
        for layer in self.layers:
            try:
                if await layer.exists(type, key):
                    return True
            except Exception as exc:
                self._layer_failed(layer, "exists", type, key, exc)
        return False

    async def get(self, type: str, key: str) -> StoredObject:
        """Retrieve content from the first layer that holds it.

        If the content was not found in the first layer, it is backfilled into
        every immediate writeable layer (read-repair).

        Raises:
            NoLayersError: If no layers are registered
            NotFoundError: If no layer holds the key
        """
        self._require_layers()
        miss = False
        for layer in self.layers:
            try:
                result = await layer.get(type, key)
            except Exception as exc:
                self._layer_failed(layer, "get", type, key, exc)
                result = None

            if result is None:
                miss = True
                continue

            if miss:
                await self._backfill(type, key, result)
            return result

        raise NotFoundError(type, key)

    async def file_path(self, type: str, key: str) -> Path | None:
        """Return the first local filesystem path holding the key.

        Raises:
            NoLayersError: If no layers are registered
        """
        self._require_layers()
        for layer in self.layers:
            try:
                path = await layer.file_path(type, key)
            except Exception as exc:
                self._layer_failed(layer, "file_path", type, key, exc)
                continue
            if path is not None:
                return path
        return None

    async def delete(self, type: str, key: str) -> bool:
        """Delete content from every immediate writeable layer.

        Readonly layers are left untouched; delayed layers are cleaned up by a
        scheduled job.

        Returns:
            True if the content existed in any immediate writeable layer

        Raises:
            NoLayersError: If no immediate writeable layer is registered
        """
        targets = self._require_writeable_layers()
        deleted = await self._delete_from(targets, type, key)

        if self.layers.delayed.any_writeable:
            await self.dispatcher.dispatch(REPLICATE_DELETE, {"type": type, "key": key})
        return deleted

    async def change_type(self, prev_type: str, new_type: str, key: str) -> str:
        """Move content from one type scope to another.

        Raises:
            NoLayersError: If no immediate writeable layer is registered
            NotFoundError: If the content does not exist under prev_type
        """
        targets = self._require_writeable_layers()
        stored = await self.get(prev_type, key)
        if prev_type == new_type:
            return key

        await self._store_in(targets, new_type, key, StoredContent(stored))
        await self._delete_from(targets, prev_type, key)

        if self.layers.delayed.any_writeable:
            await self.dispatcher.dispatch(
                REPLICATE_CHANGE_TYPE,
                {"prev_type": prev_type, "new_type": new_type, "key": key},
            )
        await self._schedule_eviction()
        return key

    # -------------------------------------------------------------------------
    # Delayed replication (run by the job worker)
    # -------------------------------------------------------------------------

    async def delayed_store(self, type: str, key: str) -> None:
        """Copy content from the immediate layers to all delayed layers.

        Raises:
            NotFoundError: If the content has vanished since it was scheduled
        """
        stored = await self.get(type, key)
        results = await self.layers.delayed.writeable.gather(
            lambda layer: layer.store(type, key, StoredContent(stored), return_existing=False)
        )
        raise_first_error(results)

    async def delayed_delete(self, type: str, key: str) -> None:
        """Delete content from all delayed layers. Absence is not an error."""
        results = await self.layers.delayed.writeable.gather(
            lambda layer: layer.delete(type, key)
        )
        raise_first_error(results)

    # -------------------------------------------------------------------------
    # Cache eviction
    # -------------------------------------------------------------------------

    async def evict_caches(self) -> list[CachedFileEntry]:
        """Evict least recently used entries from cache layers over their limit.

        Entries not yet present on a writeable non-cache layer are never
        evicted, so the only copy of content is never lost.

        Returns:
            Evicted entries, across all cache layers
        """
        evicted: list[CachedFileEntry] = []
        for layer in self.layers.cache:
            evicted.extend(await self._evict_cache(layer))
        return evicted

    async def _evict_cache(self, layer: Layer) -> list[CachedFileEntry]:
        limit = layer.cache_limit or 0
        size = await layer.size()
        if size <= limit:
            return []

        target = int(limit * (1 - self.eviction_margin))
        evicted: list[CachedFileEntry] = []
        skipped = 0

        for entry in await layer.cached_files():
            if size <= target:
                break
            if not await self._is_replicated(entry.type, entry.key):
                skipped += 1
                continue
            if await layer.delete(entry.type, entry.key):
                size -= entry.size
                evicted.append(entry)
                record_eviction(layer.name, entry.size)

        log = logger.info if evicted else logger.debug
        log(
            f"Evicted {len(evicted)} entries from {layer.name}, "
            f"{size} of {limit} bytes used, {skipped} unreplicated entries kept",
            extra={"layer": layer.name},
        )
        return evicted

    async def _is_replicated(self, type: str, key: str) -> bool:
        for layer in self.layers.writeable.non_cache:
            try:
                if await layer.exists(type, key):
                    return True
            except Exception as exc:
                self._layer_failed(layer, "exists", type, key, exc)
        return False

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    async def missing_keys(self, source: RecordSource) -> set[str]:
        """Return referenced hashes that no non-cache layer holds."""
        layers = self.layers.non_cache
        missing: set[str] = set()

        async for batch in source.batches(self.batch_size):
            hashes = {value for value in batch if value}
            present: set[str] = set()
            for layer in layers:
                remaining = hashes - present
                if not remaining:
                    break
                try:
                    present |= await layer.existing(source.type, remaining)
                except Exception as exc:
                    self._layer_failed(layer, "existing", source.type, None, exc)
            missing |= hashes - present

        if missing:
            logger.warning(f"Found {len(missing)} missing {source.type} keys")
        return missing

    async def orphaned_keys(self, source: RecordSource) -> dict[Layer, set[str]]:
        """Return, per non-cache layer, stored keys no record references."""
        referenced: set[str] = set()
        async for batch in source.batches(self.batch_size):
            referenced.update(value for value in batch if value)

        orphans: dict[Layer, set[str]] = {}
        for layer in self.layers.non_cache:
            orphans[layer] = await layer.stored_keys(source.type) - referenced
        return orphans

    async def close(self) -> None:
        """Close every distinct backend connection."""
        closed: set[int] = set()
        for layer in self.layers:
            if id(layer.connection) in closed:
                continue
            closed.add(id(layer.connection))
            await layer.connection.close()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_layers(self) -> None:
        if not self.layers:
            raise NoLayersError("No storage layers are registered")

    def _require_writeable_layers(self) -> Layers:
        targets = self.layers.immediate.writeable
        if not targets:
            raise NoLayersError("No immediate writeable storage layers are registered")
        return targets

    async def _store_in(self, targets: Layers, type: str, key: str, content: Content) -> None:
        body = content.read()
        results = await targets.gather(
            lambda layer: layer.store(type, key, body, return_existing=False)
        )
        raise_first_error(results)

    async def _delete_from(self, targets: Layers, type: str, key: str) -> bool:
        results = await targets.gather(lambda layer: layer.delete(type, key))
        raise_first_error(results)
        return any(result.value for result in results)

    async def _backfill(self, type: str, key: str, stored: StoredObject) -> None:
        """Copy content into every immediate writeable layer, best effort."""
        results = await self.layers.immediate.writeable.gather(
            lambda layer: layer.store(type, key, StoredContent(stored), return_existing=False)
        )
        for result in results:
            if result.ok:
                record_read_repair(result.layer.name)
            else:
                logger.warning(
                    f"Read-repair of {type}/{key} into {result.layer.name} failed: "
                    f"{result.error}",
                    extra={"layer": result.layer.name, "type": type, "key": key},
                )

    async def _schedule_eviction(self) -> None:
        if self.layers.any_cache:
            await self.dispatcher.dispatch(EVICT_CACHES, {})

    def _layer_failed(
        self,
        layer: Layer,
        operation: str,
        type: str,
        key: str | None,
        exc: Exception,
    ) -> None:
        logger.error(
            f"Layer {layer.name} failed during {operation} of {type}/{key}: {exc}",
            extra={"layer": layer.name, "type": type, "key": key},
        )
        record_layer_error(layer.name, operation)
