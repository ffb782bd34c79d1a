"""Azure Blob Storage backend connection."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, cast

from tierstore.backends.base import RemoteConnection, StoredObject


class AzureConnection(RemoteConnection):
    """Azure Blob Storage connection using the azure-storage-blob aio client.

    Public visibility is a container-level setting in Azure, so the per-object
    ``public`` flag is ignored.
    """

    def __init__(
        self,
        container: str,
        prefix: str = "",
        connection_string: str | None = None,
        account_url: str | None = None,
        credential: str | None = None,
    ) -> None:
        self.container = container
        self.prefix = prefix.strip("/") + "/" if prefix else ""
        self.connection_string = connection_string
        self.account_url = account_url
        self.credential = credential
        self._client: Any | None = None

    @property
    def name(self) -> str:
        return f"azure:{self.container}"

    async def _get_client(self) -> Any:
        """Get or create BlobServiceClient."""
        if self._client is None:
            try:
                from azure.storage.blob.aio import BlobServiceClient
            except ImportError as exc:
                raise RuntimeError(
                    "azure-storage-blob is required for Azure connections"
                ) from exc

            if self.connection_string:
                self._client = BlobServiceClient.from_connection_string(
                    self.connection_string
                )
            elif self.account_url:
                self._client = BlobServiceClient(
                    account_url=self.account_url, credential=self.credential
                )
            else:
                raise ValueError(
                    "Azure connection requires a connection_string or account_url"
                )

        return self._client

    def _build_key(self, directory: str, key: str) -> str:
        if directory:
            return f"{self.prefix}{directory.strip('/')}/{key}"
        return f"{self.prefix}{key}"

    async def _blob_client(self, directory: str, key: str) -> Any:
        client = await self._get_client()
        return client.get_blob_client(
            container=self.container, blob=self._build_key(directory, key)
        )

    async def put(
        self,
        directory: str,
        key: str,
        body: bytes,
        public: bool = False,
    ) -> StoredObject:
        from azure.storage.blob import ContentSettings

        blob_client = await self._blob_client(directory, key)
        await blob_client.upload_blob(
            body,
            overwrite=True,
            content_settings=ContentSettings(content_type="application/octet-stream"),
        )
        return StoredObject(key=key, body=body)

    async def head(self, directory: str, key: str) -> bool:
        blob_client = await self._blob_client(directory, key)
        return cast(bool, await blob_client.exists())

    async def fetch(self, directory: str, key: str) -> StoredObject | None:
        from azure.core.exceptions import ResourceNotFoundError

        blob_client = await self._blob_client(directory, key)
        try:
            stream = await blob_client.download_blob()
            data = await stream.readall()
        except ResourceNotFoundError:
            return None

        return StoredObject(
            key=key,
            body=cast(bytes, data),
            last_modified=getattr(stream.properties, "last_modified", None),
        )

    async def remove(self, directory: str, key: str) -> bool:
        from azure.core.exceptions import ResourceNotFoundError

        blob_client = await self._blob_client(directory, key)
        try:
            await blob_client.delete_blob()
            return True
        except ResourceNotFoundError:
            return False

    async def list_keys(self, directory: str, prefix: str = "") -> AsyncIterator[str]:
        base = self._build_key(directory, "")
        client = await self._get_client()
        container_client = client.get_container_client(self.container)
        async for blob in container_client.list_blobs(name_starts_with=base + prefix):
            yield blob.name[len(base) :]

    async def close(self) -> None:
        """Close the underlying client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
