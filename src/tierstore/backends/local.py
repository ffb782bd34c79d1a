"""Local filesystem backend connection.

Stores objects in a local directory structure:
    {root}/{directory}/{key}

This provides:
- Simple deployment (no external services)
- Size accounting and access-time scans for cache layers
- Direct file paths for callers that want to avoid copies
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path
from typing import cast
from uuid import uuid4

import aiofiles  # type: ignore[import-untyped]
import aiofiles.os  # type: ignore[import-untyped]

from tierstore.backends.base import FilesystemConnection, LocalEntry, StoredObject

logger = logging.getLogger(__name__)


class LocalConnection(FilesystemConnection):
    """Local filesystem backend connection."""

    def __init__(self, root: str | Path):
        """Initialize local connection.

        Args:
            root: Base directory for all objects
        """
        self._root = Path(root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def name(self) -> str:
        return f"local:{self._root}"

    def _directory_path(self, directory: str) -> Path:
        return self._root / directory if directory else self._root

    def local_path(self, directory: str, key: str) -> Path:
        return self._directory_path(directory) / key

    async def _ensure_directory(self, path: Path) -> None:
        """Ensure directory exists."""
        if not await aiofiles.os.path.exists(path):
            await aiofiles.os.makedirs(path, exist_ok=True)

    async def put(
        self,
        directory: str,
        key: str,
        body: bytes,
        public: bool = False,
    ) -> StoredObject:
        """Write an object to the local filesystem."""
        path = self.local_path(directory, key)
        await self._ensure_directory(path.parent)

        # Write to a sibling temp file first so readers never see partial bodies
        tmp_path = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
        async with aiofiles.open(tmp_path, "wb") as f:
            await f.write(body)
        await aiofiles.os.replace(tmp_path, path)

        logger.debug(f"Wrote {path} ({len(body)} bytes)")
        return StoredObject(key=key, body=body, last_modified=datetime.now(timezone.utc))

    async def head(self, directory: str, key: str) -> bool:
        path = self.local_path(directory, key)
        return cast(bool, await aiofiles.os.path.isfile(path))

    async def fetch(self, directory: str, key: str) -> StoredObject | None:
        path = self.local_path(directory, key)
        try:
            async with aiofiles.open(path, "rb") as f:
                body = await f.read()
            stat = await aiofiles.os.stat(path)
        except (FileNotFoundError, IsADirectoryError):
            return None

        return StoredObject(
            key=key,
            body=cast(bytes, body),
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    async def remove(self, directory: str, key: str) -> bool:
        """Delete an object and prune empty parent directories."""
        path = self.local_path(directory, key)

        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False

        logger.debug(f"Deleted {path}")

        # Try to remove empty parent directories, stopping at the directory scope
        stop = self._directory_path(directory)
        parent = path.parent
        try:
            while parent != stop and stop in parent.parents:
                if await aiofiles.os.listdir(parent):
                    break
                await aiofiles.os.rmdir(parent)
                parent = parent.parent
        except OSError:
            pass  # Concurrent writer recreated the directory

        return True

    async def list_keys(self, directory: str, prefix: str = "") -> AsyncIterator[str]:
        for entry in await self.scan(directory, prefix):
            yield entry.key

    async def scan(self, directory: str, prefix: str = "") -> list[LocalEntry]:
        base = self._directory_path(directory)
        return await asyncio.to_thread(self._scan_sync, base, prefix)

    @staticmethod
    def _scan_sync(base: Path, prefix: str) -> list[LocalEntry]:
        start = base / prefix if prefix else base
        if not start.is_dir():
            return []

        entries: list[LocalEntry] = []
        for dirpath, _dirnames, filenames in os.walk(start):
            for filename in filenames:
                if filename.startswith("."):
                    continue  # In-flight temp files
                path = Path(dirpath) / filename
                try:
                    stat = path.stat()
                except FileNotFoundError:
                    continue
                entries.append(
                    LocalEntry(
                        key=path.relative_to(base).as_posix(),
                        path=path,
                        size=stat.st_size,
                        modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    )
                )
        return entries
