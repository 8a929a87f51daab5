"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header

from sidey.blobs import BlobGateway
from sidey.config import Settings, get_settings
from sidey.db import DbClient, InMemoryDbClient, PostgresDbClient
from sidey.identity import Principal, authenticate, require_auth
from sidey.storage import InMemoryStorageClient, S3StorageClient, StorageClient

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client. It holds only the connection pool.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient(
            base_url=settings.public_asset_base_url
        )
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.public_asset_base_url,
        )
    return _storage_client


def get_blob_gateway(
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_settings),
) -> BlobGateway:
    return BlobGateway(
        storage,
        free_limit_bytes=settings.free_upload_limit_bytes,
        pro_limit_bytes=settings.pro_upload_limit_bytes,
        signed_url_expires_in=settings.signed_url_expires_in,
    )


def get_optional_principal(
    authorization: Optional[str] = Header(default=None),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
) -> Optional[Principal]:
    """Principal for the request's bearer token, or None when absent/invalid."""
    return authenticate(authorization, db, settings.jwt_secret)


def get_principal(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> Principal:
    return require_auth(principal)
