"""
Storage abstraction for S3-compatible object stores and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import BinaryIO, Optional, Protocol

import boto3
from botocore.config import Config

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class StoredObject:
    key: str
    size: int
    uploaded_at: datetime


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def put(
        self,
        key: str,
        body: BinaryIO,
        *,
        content_type: str = DEFAULT_CONTENT_TYPE,
        metadata: Optional[dict] = None,
    ) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def list(self, prefix: str, limit: int = 1000) -> list[StoredObject]:
        ...

    def public_url(self, key: str) -> str:
        ...

    def presign_put(
        self,
        key: str,
        content_length: int,
        content_type: str = DEFAULT_CONTENT_TYPE,
        expires_in: int = 3600,
    ) -> str:
        """Presigned PUT URL valid only for a body of exactly ``content_length`` bytes."""
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = field(default_factory=dict)

    def reset(self) -> None:
        self.stored_objects.clear()

    def put(
        self,
        key: str,
        body: BinaryIO,
        *,
        content_type: str = DEFAULT_CONTENT_TYPE,
        metadata: Optional[dict] = None,
    ) -> None:
        self.stored_objects[key] = {
            "body": body.read(),
            "content_type": content_type,
            "metadata": dict(metadata or {}),
            "uploaded_at": datetime.now(timezone.utc),
        }

    def delete(self, key: str) -> None:
        self.stored_objects.pop(key, None)

    def list(self, prefix: str, limit: int = 1000) -> list[StoredObject]:
        keys = sorted(k for k in self.stored_objects if k.startswith(prefix))
        return [
            StoredObject(
                key=k,
                size=len(self.stored_objects[k]["body"]),
                uploaded_at=self.stored_objects[k]["uploaded_at"],
            )
            for k in keys[:limit]
        ]

    def public_url(self, key: str) -> str:
        return f"{self.base_url.rstrip('/')}/{key}"

    def presign_put(
        self,
        key: str,
        content_length: int,
        content_type: str = DEFAULT_CONTENT_TYPE,
        expires_in: int = 3600,
    ) -> str:
        return (
            f"{self.public_url(key)}?op=put&length={content_length}"
            f"&expires={expires_in}"
        )


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client (AWS S3, Cloudflare R2, Tencent COS, MinIO).
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def put(
        self,
        key: str,
        body: BinaryIO,
        *,
        content_type: str = DEFAULT_CONTENT_TYPE,
        metadata: Optional[dict] = None,
    ) -> None:
        # upload_fileobj streams in parts so large uploads are not buffered.
        self._client.upload_fileobj(
            body,
            self.bucket,
            key,
            ExtraArgs={
                "ContentType": content_type,
                "Metadata": {k: str(v) for k, v in (metadata or {}).items()},
            },
        )

    def delete(self, key: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=key)

    def list(self, prefix: str, limit: int = 1000) -> list[StoredObject]:
        response = self._client.list_objects_v2(
            Bucket=self.bucket, Prefix=prefix, MaxKeys=limit
        )
        return [
            StoredObject(
                key=item["Key"],
                size=item["Size"],
                uploaded_at=item["LastModified"],
            )
            for item in response.get("Contents", [])
        ]

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/{key}"

    def presign_put(
        self,
        key: str,
        content_length: int,
        content_type: str = DEFAULT_CONTENT_TYPE,
        expires_in: int = 3600,
    ) -> str:
        return self._client.generate_presigned_url(
            ClientMethod="put_object",
            Params={
                "Bucket": self.bucket,
                "Key": key,
                "ContentType": content_type,
                # Signed into the URL, so S3 rejects a body of any other size.
                "ContentLength": content_length,
            },
            ExpiresIn=expires_in,
        )
