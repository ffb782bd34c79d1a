"""Content inputs and content key derivation.

Three input shapes are accepted by the storage facade:
- BytesContent: raw bytes held in memory
- StreamContent: a binary file-like object, rewound before and after reading
- StoredContent: an object previously returned by a layer

The content key is the SHA-1 hex digest of the bytes. Identical bytes always
produce the same key, which is what deduplicates content per type scope.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import BinaryIO

from tierstore.backends.base import StoredObject

CHUNK_SIZE = 64 * 1024  # 64KB chunks for hashing streams


class Content(ABC):
    """Closed set of content input shapes."""

    @abstractmethod
    def read(self) -> bytes:
        """Return the complete body."""
        ...

    def digest(self) -> str:
        """Return the content key for this content."""
        return content_digest(self.read())


@dataclass(frozen=True)
class BytesContent(Content):
    data: bytes

    def read(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class StreamContent(Content):
    """File-like content.

    The stream is rewound before and after every read so the same handle can
    be read by several layers and still be usable by the caller afterwards.
    """

    stream: BinaryIO

    def read(self) -> bytes:
        self.stream.seek(0)
        data = self.stream.read()
        self.stream.seek(0)
        return data

    def digest(self) -> str:
        sha1 = hashlib.sha1()  # nosec B324 - content addressing, not security
        self.stream.seek(0)
        for chunk in iter(lambda: self.stream.read(CHUNK_SIZE), b""):
            sha1.update(chunk)
        self.stream.seek(0)
        return sha1.hexdigest()


@dataclass(frozen=True)
class StoredContent(Content):
    stored: StoredObject

    def read(self) -> bytes:
        return self.stored.body


def content_digest(data: bytes) -> str:
    """Compute the SHA-1 hex digest used as content key."""
    return hashlib.sha1(data).hexdigest()  # nosec B324 - content addressing


def as_content(value: bytes | BinaryIO | StoredObject | Content) -> Content:
    """Wrap a caller-supplied value in its Content variant."""
    if isinstance(value, Content):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BytesContent(bytes(value))
    if isinstance(value, StoredObject):
        return StoredContent(value)
    return StreamContent(value)
