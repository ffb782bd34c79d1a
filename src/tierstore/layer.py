"""Storage layer: one backend connection plus access policy.

Objects are addressed as:
    {path}/{type}/{key[:2]}/{key[2:]}

Splitting the key on its first two hex characters bounds the number of
entries per directory. Cache layers keep a sidecar ``.timestamp`` object next
to each entry holding the last access time (ISO-8601, UTC), which drives
least-recently-used eviction.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from tierstore.backends.base import Connection, FilesystemConnection, StoredObject
from tierstore.content import Content, as_content
from tierstore.errors import LayerConfigurationError, ReadOnlyError
from tierstore.observability.logging import log_duration

logger = logging.getLogger(__name__)

TIMESTAMP_SUFFIX = ".timestamp"
DEFAULT_TOUCH_THRESHOLD = timedelta(minutes=5)


@dataclass(frozen=True)
class CachedFileEntry:
    """A content file found in a cache layer's local storage."""

    path: Path
    type: str
    key: str
    last_access: datetime
    size: int


def key_component(type: str, key: str) -> str:
    """Object key for content ``key`` under type scope ``type``."""
    return f"{type}/{key[:2]}/{key[2:]}"


def timestamp_component(type: str, key: str) -> str:
    return key_component(type, key) + TIMESTAMP_SUFFIX


def parse_key_component(object_key: str) -> tuple[str, str] | None:
    """Split an object key back into (type, content key).

    Returns None for keys that are not content entries.
    """
    if object_key.endswith(TIMESTAMP_SUFFIX):
        return None
    parts = object_key.rsplit("/", 2)
    if len(parts) != 3 or not parts[0] or len(parts[1]) != 2 or not parts[2]:
        return None
    type, shard, rest = parts
    return type, shard + rest


class Layer:
    """A storage layer.

    Options:
    - delayed: written outside the originating call by the job worker
    - readonly: can only be read from, never written to
    - public: objects get the public-readable flag where the backend supports it
    - cache: size limit in bytes; makes this a bounded, evictable cache layer
    - path: directory name used for this layer inside the connection

    A cache layer must be immediate, writeable and backed by a local
    filesystem.
    """

    def __init__(
        self,
        connection: Connection,
        *,
        delayed: bool = False,
        readonly: bool = False,
        public: bool = False,
        cache: int | None = None,
        path: str | None = None,
        touch_threshold: timedelta = DEFAULT_TOUCH_THRESHOLD,
    ) -> None:
        if cache is not None:
            if delayed or readonly:
                raise LayerConfigurationError(
                    "Cache layers must be immediate and writeable "
                    f"(delayed={delayed}, readonly={readonly})"
                )
            if cache < 0:
                raise LayerConfigurationError(f"Cache limit must not be negative: {cache}")
            if not isinstance(connection, FilesystemConnection):
                raise LayerConfigurationError(
                    f"Cache layers require a local filesystem connection, got {connection.name}"
                )

        self.connection = connection
        self.delayed = delayed
        self.readonly = readonly
        self.public = public
        self.cache_limit = cache
        self.path = path.strip("/") if path else None
        self.touch_threshold = touch_threshold

        # Resolved once: local filesystem capabilities
        self._filesystem: FilesystemConnection | None = (
            connection if isinstance(connection, FilesystemConnection) else None
        )

    def __repr__(self) -> str:
        flags = [
            flag
            for flag, enabled in (
                ("delayed", self.delayed),
                ("readonly", self.readonly),
                ("public", self.public),
                ("cache", self.is_cache),
            )
            if enabled
        ]
        return f"<Layer {self.name} {','.join(flags) or 'immediate'}>"

    @property
    def name(self) -> str:
        """Layer name, e.g. "local:/srv/blobs/production"."""
        return f"{self.connection.name}/{self.path or ''}"

    @property
    def immediate(self) -> bool:
        return not self.delayed

    @property
    def writeable(self) -> bool:
        return not self.readonly

    @property
    def is_cache(self) -> bool:
        return self.cache_limit is not None

    @property
    def is_local(self) -> bool:
        return self._filesystem is not None

    @property
    def directory(self) -> str:
        return self.path or ""

    async def store(
        self,
        type: str,
        key: str,
        content: Content | bytes,
        return_existing: bool = True,
    ) -> StoredObject | None:
        """Store content under (type, key).

        Key must be the content digest. If an object with the key already
        exists, nothing is written: a hash collision never overwrites. The
        existing object is fetched and returned only when ``return_existing``
        is set; otherwise None is returned for it.

        Raises:
            ReadOnlyError: If the layer is readonly
        """
        if self.readonly:
            raise ReadOnlyError(self.name)

        object_key = key_component(type, key)
        with log_duration(logger, f"Stored {type}/{key} in {self.name}"):
            if await self.connection.head(self.directory, object_key):
                result = None
                if return_existing:
                    result = await self.connection.fetch(self.directory, object_key)
            else:
                result = await self.connection.put(
                    self.directory,
                    object_key,
                    as_content(content).read(),
                    public=self.public,
                )

        if self.is_cache:
            await self._refresh_access(type, key)
        return result

    async def exists(self, type: str, key: str) -> bool:
        """Return True if an object with the given key exists."""
        return await self.connection.head(self.directory, key_component(type, key))

    async def existing(self, type: str, keys: Iterable[str]) -> set[str]:
        """Return the subset of keys present in this layer.

        One probe per key is dispatched concurrently.
        """
        candidates = list(keys)
        results = await asyncio.gather(*(self.exists(type, key) for key in candidates))
        return {key for key, found in zip(candidates, results) if found}

    async def get(self, type: str, key: str) -> StoredObject | None:
        """Retrieve an object, or None if it isn't stored here.

        A hit on a cache layer refreshes its access timestamp.
        """
        with log_duration(logger, f"Fetched {type}/{key} from {self.name}"):
            result = await self.connection.fetch(self.directory, key_component(type, key))
        if result is not None and self.is_cache:
            await self._refresh_access(type, key)
        return result

    async def stored_keys(self, type: str) -> set[str]:
        """Enumerate every content key stored under a type scope."""
        keys: set[str] = set()
        async for object_key in self.connection.list_keys(self.directory, f"{type}/"):
            parsed = parse_key_component(object_key)
            if parsed is not None and parsed[0] == type:
                keys.add(parsed[1])
        return keys

    async def delete(self, type: str, key: str) -> bool:
        """Delete an object.

        Returns:
            True if the object was deleted, False if it could not be found

        Raises:
            ReadOnlyError: If the layer is readonly
        """
        if self.readonly:
            raise ReadOnlyError(self.name)

        deleted = await self.connection.remove(self.directory, key_component(type, key))
        if self.is_cache:
            await self.connection.remove(self.directory, timestamp_component(type, key))
        return deleted

    async def file_path(self, type: str, key: str) -> Path | None:
        """Absolute local path of a stored object, if this layer is local."""
        if self._filesystem is None:
            return None
        if not await self.exists(type, key):
            return None
        return self._filesystem.local_path(self.directory, key_component(type, key))

    async def size(self) -> int:
        """Total bytes of content stored in this layer (0 for remote layers)."""
        if self._filesystem is None:
            return 0
        entries = await self._filesystem.scan(self.directory)
        return sum(entry.size for entry in entries if parse_key_component(entry.key))

    async def cached_files(self) -> list[CachedFileEntry]:
        """Local content files, least recently accessed first."""
        if self._filesystem is None:
            return []

        entries = await self._filesystem.scan(self.directory)
        access_times = {
            entry.key[: -len(TIMESTAMP_SUFFIX)]: entry.path
            for entry in entries
            if entry.key.endswith(TIMESTAMP_SUFFIX)
        }

        files: list[CachedFileEntry] = []
        for entry in entries:
            parsed = parse_key_component(entry.key)
            if parsed is None:
                continue
            type, key = parsed
            last_access = entry.modified
            if entry.key in access_times:
                last_access = await self._read_timestamp(type, key) or entry.modified
            files.append(
                CachedFileEntry(
                    path=entry.path,
                    type=type,
                    key=key,
                    last_access=last_access,
                    size=entry.size,
                )
            )

        files.sort(key=lambda item: item.last_access)
        return files

    async def _read_timestamp(self, type: str, key: str) -> datetime | None:
        stored = await self.connection.fetch(self.directory, timestamp_component(type, key))
        if stored is None:
            return None
        try:
            timestamp = datetime.fromisoformat(stored.body.decode().strip())
        except ValueError:
            logger.warning(
                f"Ignoring malformed access timestamp for {type}/{key}",
                extra={"layer": self.name, "type": type, "key": key},
            )
            return None
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp

    async def _refresh_access(self, type: str, key: str) -> None:
        """Touch the access timestamp; a failed write never fails the caller."""
        try:
            await self._touch(type, key)
        except Exception as exc:
            logger.warning(
                f"Could not update access time of {type}/{key} in {self.name}: {exc}",
                extra={"layer": self.name, "type": type, "key": key},
            )

    async def _touch(self, type: str, key: str) -> None:
        """Rewrite the access timestamp when it is missing or outdated."""
        now = datetime.now(timezone.utc)
        timestamp = await self._read_timestamp(type, key)
        if timestamp is not None and now - timestamp < self.touch_threshold:
            return
        await self.connection.put(
            self.directory,
            timestamp_component(type, key),
            now.isoformat().encode(),
            public=self.public,
        )
