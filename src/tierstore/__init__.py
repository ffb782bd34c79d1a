"""tierstore: content-addressable, multi-tier blob storage.

Content is stored under the SHA-1 digest of its bytes across an ordered stack
of layers (local disk, object stores, read-only archives, bounded caches).
Reads heal gaps between layers, slow layers are replicated in the background
and cache copies are evicted only once they exist elsewhere.
"""

from tierstore.backends.base import StoredObject
from tierstore.content import BytesContent, Content, StoredContent, StreamContent
from tierstore.errors import (
    LayerConfigurationError,
    NoLayersError,
    NotFoundError,
    ReadOnlyError,
    TierStoreError,
)
from tierstore.layer import CachedFileEntry, Layer
from tierstore.layers import LayerResult, Layers
from tierstore.reconciliation import RecordSource, SqlRecordSource, StaticRecordSource
from tierstore.storage import Storage

__version__ = "0.1.0"

__all__ = [
    "Storage",
    "Layer",
    "Layers",
    "LayerResult",
    "CachedFileEntry",
    "StoredObject",
    "Content",
    "BytesContent",
    "StreamContent",
    "StoredContent",
    "RecordSource",
    "StaticRecordSource",
    "SqlRecordSource",
    "TierStoreError",
    "LayerConfigurationError",
    "NoLayersError",
    "NotFoundError",
    "ReadOnlyError",
]
