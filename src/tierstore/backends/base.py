"""Backend connection capability.

Defines the minimal operation set every storage adapter provides. Objects are
addressed by a directory scope (the layer path, or "" for the root) and a
slash-separated object key inside it.

Two closed variants exist:
- RemoteConnection: object stores without a local filesystem (S3, GCS, Azure)
- FilesystemConnection: backends with a local root, which additionally
  support path lookup and directory scans (size accounting, cache eviction)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import ClassVar


class BackendKind(str, Enum):
    """Backend variant, fixed per connection class."""

    LOCAL = "local"
    REMOTE = "remote"


@dataclass
class StoredObject:
    """An object fetched from or written to a backend."""

    key: str
    body: bytes
    last_modified: datetime | None = None

    @property
    def size(self) -> int:
        return len(self.body)


@dataclass(frozen=True)
class LocalEntry:
    """A file found while scanning a filesystem backend."""

    key: str
    path: Path
    size: int
    modified: datetime


class Connection(ABC):
    """Abstract base class for backend connections."""

    kind: ClassVar[BackendKind]

    @property
    @abstractmethod
    def name(self) -> str:
        """Short description used in layer names and logs."""
        ...

    @abstractmethod
    async def put(
        self,
        directory: str,
        key: str,
        body: bytes,
        public: bool = False,
    ) -> StoredObject:
        """Create (or replace) an object with the given body.

        Args:
            directory: Directory scope, created on demand
            key: Object key within the directory
            body: Object content
            public: Mark the object publicly readable where supported

        Returns:
            The stored object
        """
        ...

    @abstractmethod
    async def head(self, directory: str, key: str) -> bool:
        """Cheap existence probe that does not fetch the body."""
        ...

    @abstractmethod
    async def fetch(self, directory: str, key: str) -> StoredObject | None:
        """Fetch an object, or None if it does not exist."""
        ...

    @abstractmethod
    async def remove(self, directory: str, key: str) -> bool:
        """Delete an object.

        Returns:
            True if deleted, False if not found
        """
        ...

    @abstractmethod
    def list_keys(self, directory: str, prefix: str = "") -> AsyncIterator[str]:
        """Enumerate object keys under a prefix within a directory."""
        ...

    async def close(self) -> None:
        """Release client resources."""
        return None


class RemoteConnection(Connection):
    """Connection to an object store without a local filesystem."""

    kind = BackendKind.REMOTE


class FilesystemConnection(Connection):
    """Connection backed by a local filesystem root."""

    kind = BackendKind.LOCAL

    @property
    @abstractmethod
    def root(self) -> Path:
        """Absolute filesystem root."""
        ...

    @abstractmethod
    def local_path(self, directory: str, key: str) -> Path:
        """Absolute path an object is (or would be) stored at."""
        ...

    @abstractmethod
    async def scan(self, directory: str, prefix: str = "") -> list[LocalEntry]:
        """List files under a prefix with their sizes and modification times."""
        ...
