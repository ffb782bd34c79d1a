"""S3-compatible backend connection.

Supports:
- AWS S3
- MinIO
- DigitalOcean Spaces
- Any S3-compatible object storage
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, cast

from tierstore.backends.base import RemoteConnection, StoredObject

if TYPE_CHECKING:
    import aioboto3


class S3Connection(RemoteConnection):
    """S3-compatible connection.

    Uses aioboto3 for async S3 operations. The layer directory scope becomes a
    key prefix inside the configured bucket.

    Configuration via:
    - bucket: S3 bucket name
    - prefix: Optional key prefix shared by all layers on this connection
    - endpoint_url: For non-AWS S3-compatible services
    - region_name: AWS region
    - credentials: via AWS SDK defaults or explicit aws_access_key_id/secret_access_key
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        endpoint_url: str | None = None,
        region_name: str = "us-east-1",
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
    ):
        self.bucket = bucket
        self.prefix = prefix.strip("/") + "/" if prefix else ""
        self.endpoint_url = endpoint_url
        self.region_name = region_name
        self.aws_access_key_id = aws_access_key_id
        self.aws_secret_access_key = aws_secret_access_key
        self._session: "aioboto3.Session | None" = None

    @property
    def name(self) -> str:
        return f"s3:{self.bucket}"

    async def _get_session(self) -> "aioboto3.Session":
        """Get or create aioboto3 session."""
        if self._session is None:
            try:
                import aioboto3
            except ImportError as exc:
                raise RuntimeError("aioboto3 is required for S3 connections") from exc

            self._session = aioboto3.Session(
                aws_access_key_id=self.aws_access_key_id,
                aws_secret_access_key=self.aws_secret_access_key,
                region_name=self.region_name,
            )
        return self._session

    def _client(self, session: "aioboto3.Session") -> Any:
        return session.client("s3", endpoint_url=self.endpoint_url)

    def _build_key(self, directory: str, key: str) -> str:
        """Build S3 object key: {prefix}{directory}/{key}."""
        if directory:
            return f"{self.prefix}{directory.strip('/')}/{key}"
        return f"{self.prefix}{key}"

    @staticmethod
    def _is_missing(exc: Exception) -> bool:
        response = getattr(exc, "response", None) or {}
        code = str(response.get("Error", {}).get("Code", ""))
        return code in {"404", "NoSuchKey", "NotFound"}

    async def put(
        self,
        directory: str,
        key: str,
        body: bytes,
        public: bool = False,
    ) -> StoredObject:
        """Store an object in S3."""
        extra: dict[str, Any] = {"ACL": "public-read"} if public else {}

        session = await self._get_session()
        async with self._client(session) as s3:
            await s3.put_object(
                Bucket=self.bucket,
                Key=self._build_key(directory, key),
                Body=body,
                ContentType="application/octet-stream",
                **extra,
            )

        return StoredObject(key=key, body=body)

    async def head(self, directory: str, key: str) -> bool:
        session = await self._get_session()
        async with self._client(session) as s3:
            try:
                await s3.head_object(Bucket=self.bucket, Key=self._build_key(directory, key))
                return True
            except Exception as exc:
                if self._is_missing(exc):
                    return False
                raise

    async def fetch(self, directory: str, key: str) -> StoredObject | None:
        session = await self._get_session()
        async with self._client(session) as s3:
            try:
                response = await s3.get_object(
                    Bucket=self.bucket,
                    Key=self._build_key(directory, key),
                )
            except Exception as exc:
                if self._is_missing(exc):
                    return None
                raise

            async with response["Body"] as stream:
                data = await stream.read()

        return StoredObject(
            key=key,
            body=cast(bytes, data),
            last_modified=response.get("LastModified"),
        )

    async def remove(self, directory: str, key: str) -> bool:
        """Delete an object from S3.

        S3 deletes are idempotent, so existence is probed first to report
        whether anything was removed.
        """
        if not await self.head(directory, key):
            return False

        session = await self._get_session()
        async with self._client(session) as s3:
            await s3.delete_object(Bucket=self.bucket, Key=self._build_key(directory, key))
        return True

    async def list_keys(self, directory: str, prefix: str = "") -> AsyncIterator[str]:
        base = self._build_key(directory, "")
        session = await self._get_session()
        async with self._client(session) as s3:
            paginator = s3.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=self.bucket, Prefix=base + prefix):
                for item in page.get("Contents", []):
                    yield item["Key"][len(base) :]

    async def close(self) -> None:
        """Close the S3 session."""
        # aioboto3 sessions don't need explicit closing
        self._session = None
