"""Global pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from tierstore.backends.base import RemoteConnection, StoredObject
from tierstore.backends.local import LocalConnection
from tierstore.layer import TIMESTAMP_SUFFIX, Layer
from tierstore.layers import Layers
from tierstore.storage import Storage


class MemoryConnection(RemoteConnection):
    """In-memory remote connection with switchable failure injection."""

    def __init__(self, label: str = "memory") -> None:
        self.label = label
        self.objects: dict[str, bytes] = {}
        self.fail = False
        self.puts = 0
        self.fetches = 0

    @property
    def name(self) -> str:
        return f"memory:{self.label}"

    def _path(self, directory: str, key: str) -> str:
        return f"{directory}/{key}" if directory else key

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError(f"{self.label} is unavailable")

    async def put(
        self, directory: str, key: str, body: bytes, public: bool = False
    ) -> StoredObject:
        self._check()
        self.puts += 1
        self.objects[self._path(directory, key)] = body
        return StoredObject(key=key, body=body)

    async def head(self, directory: str, key: str) -> bool:
        self._check()
        return self._path(directory, key) in self.objects

    async def fetch(self, directory: str, key: str) -> StoredObject | None:
        self._check()
        self.fetches += 1
        body = self.objects.get(self._path(directory, key))
        return None if body is None else StoredObject(key=key, body=body)

    async def remove(self, directory: str, key: str) -> bool:
        self._check()
        return self.objects.pop(self._path(directory, key), None) is not None

    async def list_keys(self, directory: str, prefix: str = "") -> AsyncIterator[str]:
        self._check()
        base = f"{directory}/" if directory else ""
        for path in list(self.objects):
            if path.startswith(base + prefix):
                yield path[len(base) :]



class FullDiskConnection(LocalConnection):
    """Local connection whose timestamp writes fail once ``full`` is set."""

    def __init__(self, root: Path) -> None:
        super().__init__(root)
        self.full = False

    async def put(
        self, directory: str, key: str, body: bytes, public: bool = False
    ) -> StoredObject:
        if self.full and key.endswith(TIMESTAMP_SUFFIX):
            raise OSError("No space left on device")
        return await super().put(directory, key, body, public=public)

@pytest.fixture
def dispatcher() -> AsyncMock:
    """Job dispatcher that records dispatched tasks."""
    mock = AsyncMock()
    mock.dispatch = AsyncMock(return_value="job-1")
    return mock


@pytest.fixture
def local(tmp_path: Path) -> LocalConnection:
    """Local connection rooted in a temporary directory."""
    return LocalConnection(tmp_path / "blobs")


@pytest.fixture
def full_disk(tmp_path: Path) -> FullDiskConnection:
    """Local connection that can be made to reject timestamp writes."""
    return FullDiskConnection(tmp_path / "full")


@pytest.fixture
def make_storage(dispatcher: AsyncMock):
    """Factory building a Storage over the given layers."""

    def factory(*layers: Layer, **options) -> Storage:
        return Storage(Layers(layers), dispatcher, **options)

    return factory


@pytest.fixture
def memory():
    """Factory for in-memory remote connections."""

    def factory(label: str = "memory") -> MemoryConnection:
        return MemoryConnection(label)

    return factory
