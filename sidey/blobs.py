"""
Blob gateway: uploads, deletes and listings scoped to a site's key namespace.

Every key a site may touch lives under ``{siteName}/``. Admins may act on any
key. Rows that reference a blob by URL are not updated when it is deleted.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import BinaryIO, Optional
from urllib.parse import quote

from sidey.errors import Forbidden, ValidationError
from sidey.identity import Principal
from sidey.security import generate_id
from sidey.storage import DEFAULT_CONTENT_TYPE, StorageClient

logger = logging.getLogger(__name__)

LIST_LIMIT = 1000


@dataclass
class IncomingFile:
    filename: str
    size: int
    stream: BinaryIO
    content_type: Optional[str] = None


def _format_limit(limit: int) -> str:
    gib = 1024 * 1024 * 1024
    if limit >= gib and limit % gib == 0:
        return f"{limit // gib}GB"
    return f"{limit // (1024 * 1024)}MB"


def _namespace(principal: Principal) -> str:
    return f"{principal.site_name}/"


def generated_key(principal: Principal, filename: str) -> str:
    extension = os.path.splitext(filename or "")[1].lstrip(".").lower()
    key = f"{_namespace(principal)}{generate_id()}"
    return f"{key}.{extension}" if extension else key


def _is_safe_key(key: str) -> bool:
    segments = key.split("/")
    return (
        not key.startswith("/")
        and "\\" not in key
        and all(segment not in ("", ".", "..") for segment in segments)
    )


class BlobGateway:
    def __init__(
        self,
        storage: StorageClient,
        *,
        free_limit_bytes: int,
        pro_limit_bytes: int,
        signed_url_expires_in: int = 3600,
    ):
        self.storage = storage
        self.free_limit_bytes = free_limit_bytes
        self.pro_limit_bytes = pro_limit_bytes
        self.signed_url_expires_in = signed_url_expires_in

    def upload_limit(self, principal: Principal) -> int:
        return self.pro_limit_bytes if principal.is_pro else self.free_limit_bytes

    def _check_quota(self, principal: Principal, size: int) -> None:
        limit = self.upload_limit(principal)
        if size > limit:
            raise ValidationError(f"File too large. Max size: {_format_limit(limit)}")

    def _ensure_in_namespace(self, principal: Principal, key: str) -> None:
        if not key.startswith(_namespace(principal)) and not principal.is_admin:
            logger.warning(
                "Denied storage access to %s for site %s", key, principal.site_name
            )
            raise Forbidden("Unauthorized")

    def resolve_upload_key(
        self, principal: Principal, filename: str, custom_path: Optional[str]
    ) -> str:
        """Server-derived key, or a caller path that stays inside its namespace."""
        if not custom_path:
            return generated_key(principal, filename)
        key = custom_path.strip()
        if not _is_safe_key(key):
            raise ValidationError("Invalid path")
        self._ensure_in_namespace(principal, key)
        return key

    def upload(
        self,
        principal: Principal,
        incoming: IncomingFile,
        custom_path: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> dict:
        self._check_quota(principal, incoming.size)
        key = self.resolve_upload_key(principal, incoming.filename, custom_path)
        mime_type = content_type or incoming.content_type or DEFAULT_CONTENT_TYPE
        self.storage.put(
            key,
            incoming.stream,
            content_type=mime_type,
            metadata={
                "originalName": quote(incoming.filename or ""),
                "uploadedBy": principal.user_id,
                "siteName": principal.site_name,
            },
        )
        logger.info(
            "Stored %s (%d bytes) for site %s", key, incoming.size, principal.site_name
        )
        return {
            "success": True,
            "url": self.storage.public_url(key),
            "path": key,
            "filename": incoming.filename,
            "size": incoming.size,
            "type": mime_type,
        }

    def delete(self, principal: Principal, path: Optional[str]) -> dict:
        if not path:
            raise ValidationError("Path required")
        self._ensure_in_namespace(principal, path)
        self.storage.delete(path)
        logger.info("Deleted %s for site %s", path, principal.site_name)
        return {"success": True}

    def list(self, principal: Principal, prefix: Optional[str] = None) -> dict:
        prefix = prefix or _namespace(principal)
        self._ensure_in_namespace(principal, prefix)
        files = [
            {
                "key": item.key,
                "size": item.size,
                "uploaded": item.uploaded_at.isoformat(),
                "url": self.storage.public_url(item.key),
            }
            for item in self.storage.list(prefix, limit=LIST_LIMIT)
        ]
        return {"files": files}

    def signed_upload(
        self,
        principal: Principal,
        filename: Optional[str],
        content_type: Optional[str] = None,
        size: Optional[int] = None,
    ) -> dict:
        """
        Presigned direct upload. The declared size is checked against the
        caller's quota and bound into the signature.
        """
        if not filename:
            raise ValidationError("Filename required")
        if size is None or size <= 0:
            raise ValidationError("File size required")
        self._check_quota(principal, size)
        key = generated_key(principal, filename)
        mime_type = content_type or DEFAULT_CONTENT_TYPE
        upload_url = self.storage.presign_put(
            key,
            content_length=size,
            content_type=mime_type,
            expires_in=self.signed_url_expires_in,
        )
        return {
            "uploadUrl": upload_url,
            "path": key,
            "method": "PUT",
            "headers": {"Content-Type": mime_type, "Content-Length": str(size)},
        }
