"""Backend connections for tierstore.

Provides the storage technologies a layer can sit on:
- Local filesystem (default, required for cache layers)
- S3-compatible storage (MinIO, AWS S3)
- Google Cloud Storage
- Azure Blob Storage

Remote connections import their SDKs lazily, so only the extras for the
backends actually configured need to be installed.
"""

from tierstore.backends.base import (
    BackendKind,
    Connection,
    FilesystemConnection,
    LocalEntry,
    RemoteConnection,
    StoredObject,
)
from tierstore.backends.factory import build_connection, build_layers, load_layers
from tierstore.backends.local import LocalConnection

__all__ = [
    "BackendKind",
    "Connection",
    "FilesystemConnection",
    "RemoteConnection",
    "LocalEntry",
    "StoredObject",
    "LocalConnection",
    "build_connection",
    "build_layers",
    "load_layers",
]
