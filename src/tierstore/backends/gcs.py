"""Google Cloud Storage backend connection."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any, cast

from tierstore.backends.base import RemoteConnection, StoredObject


class GcsConnection(RemoteConnection):
    """GCS connection.

    Uses google-cloud-storage with asyncio.to_thread for non-blocking I/O.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        project: str | None = None,
        credentials_path: str | None = None,
    ) -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/") + "/" if prefix else ""
        self.project = project
        self.credentials_path = credentials_path
        self._client: Any | None = None

    @property
    def name(self) -> str:
        return f"gcs:{self.bucket}"

    async def _get_client(self) -> Any:
        """Get or create GCS client."""
        if self._client is None:
            try:
                from google.cloud import storage
            except ImportError as exc:
                raise RuntimeError("google-cloud-storage is required for GCS connections") from exc

            if self.credentials_path:
                self._client = storage.Client.from_service_account_json(
                    self.credentials_path, project=self.project
                )
            else:
                self._client = storage.Client(project=self.project)
        return self._client

    def _build_key(self, directory: str, key: str) -> str:
        if directory:
            return f"{self.prefix}{directory.strip('/')}/{key}"
        return f"{self.prefix}{key}"

    async def _blob(self, directory: str, key: str) -> Any:
        client = await self._get_client()
        return client.bucket(self.bucket).blob(self._build_key(directory, key))

    async def put(
        self,
        directory: str,
        key: str,
        body: bytes,
        public: bool = False,
    ) -> StoredObject:
        blob = await self._blob(directory, key)
        await asyncio.to_thread(
            blob.upload_from_string, body, content_type="application/octet-stream"
        )
        if public:
            await asyncio.to_thread(blob.make_public)
        return StoredObject(key=key, body=body)

    async def head(self, directory: str, key: str) -> bool:
        blob = await self._blob(directory, key)
        return cast(bool, await asyncio.to_thread(blob.exists))

    async def fetch(self, directory: str, key: str) -> StoredObject | None:
        blob = await self._blob(directory, key)

        exists = await asyncio.to_thread(blob.exists)
        if not exists:
            return None

        data = await asyncio.to_thread(blob.download_as_bytes)
        return StoredObject(
            key=key,
            body=cast(bytes, data),
            last_modified=getattr(blob, "updated", None),
        )

    async def remove(self, directory: str, key: str) -> bool:
        blob = await self._blob(directory, key)

        exists = await asyncio.to_thread(blob.exists)
        if not exists:
            return False

        await asyncio.to_thread(blob.delete)
        return True

    async def list_keys(self, directory: str, prefix: str = "") -> AsyncIterator[str]:
        base = self._build_key(directory, "")
        client = await self._get_client()
        blobs = await asyncio.to_thread(
            lambda: list(client.list_blobs(self.bucket, prefix=base + prefix))
        )
        for blob in blobs:
            yield blob.name[len(base) :]
