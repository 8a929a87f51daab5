"""
HTTP routes for the Sidey API.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, File, Form, Query, Request, UploadFile

from sidey import accounts, public
from sidey.blobs import BlobGateway, IncomingFile
from sidey.config import Settings, get_settings
from sidey.db import DbClient
from sidey.dependencies import (
    get_blob_gateway,
    get_db_client,
    get_optional_principal,
    get_principal,
)
from sidey.errors import ValidationError
from sidey.identity import Principal
from sidey.resources import ListQuery, dispatch, resolve_kind
from sidey.schemas import (
    DeleteBlobRequest,
    ResetPasswordRequest,
    SigninRequest,
    SignupRequest,
    SignedUrlRequest,
    UpdatePasswordRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


# Auth


@router.post("/auth/signup")
def signup(
    payload: SignupRequest,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    return accounts.signup(db, settings, payload)


@router.post("/auth/signin")
def signin(
    payload: SigninRequest,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    return accounts.signin(db, settings, payload)


@router.post("/auth/signout")
def signout():
    # Tokens are stateless; the client discards its copy.
    return {"success": True}


@router.get("/auth/me")
def me(principal: Principal = Depends(get_principal)):
    return {"user": principal.as_dict()}


@router.post("/auth/reset-password")
def reset_password(
    payload: ResetPasswordRequest, db: DbClient = Depends(get_db_client)
):
    return accounts.request_password_reset(db, payload)


@router.post("/auth/update-password")
def update_password(
    payload: UpdatePasswordRequest,
    principal: Principal = Depends(get_principal),
    db: DbClient = Depends(get_db_client),
):
    return accounts.update_password(db, principal, payload)


# Tenant data


@router.get("/data/{collection}")
@router.get("/data/{collection}/{doc_id}")
def read_data(
    collection: str,
    request: Request,
    doc_id: Optional[str] = None,
    db: DbClient = Depends(get_db_client),
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    kind = resolve_kind(collection)
    query = ListQuery.from_params(request.query_params)
    return dispatch(kind, "GET", db, principal, doc_id=doc_id, query=query)


@router.post("/data/{collection}")
@router.post("/data/{collection}/{doc_id}")
@router.put("/data/{collection}")
@router.put("/data/{collection}/{doc_id}")
def write_data(
    collection: str,
    request: Request,
    doc_id: Optional[str] = None,
    payload: Any = Body(default=None),
    db: DbClient = Depends(get_db_client),
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    kind = resolve_kind(collection)
    return dispatch(kind, request.method, db, principal, doc_id=doc_id, payload=payload)


@router.delete("/data/{collection}")
@router.delete("/data/{collection}/{doc_id}")
def delete_data(
    collection: str,
    doc_id: Optional[str] = None,
    db: DbClient = Depends(get_db_client),
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    kind = resolve_kind(collection)
    return dispatch(kind, "DELETE", db, principal, doc_id=doc_id)


# Storage


def _file_size(file: UploadFile) -> int:
    if file.size is not None:
        return file.size
    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)
    return size


@router.post("/storage/upload")
def upload(
    file: Optional[UploadFile] = File(None),
    path: Optional[str] = Form(None),
    content_type: Optional[str] = Form(None, alias="contentType"),
    principal: Principal = Depends(get_principal),
    gateway: BlobGateway = Depends(get_blob_gateway),
):
    if file is None:
        raise ValidationError("No file provided")
    incoming = IncomingFile(
        filename=file.filename or "",
        size=_file_size(file),
        stream=file.file,
        content_type=file.content_type,
    )
    return gateway.upload(principal, incoming, custom_path=path, content_type=content_type)


@router.delete("/storage/delete")
def delete_blob(
    payload: DeleteBlobRequest,
    principal: Principal = Depends(get_principal),
    gateway: BlobGateway = Depends(get_blob_gateway),
):
    return gateway.delete(principal, payload.path)


@router.get("/storage/list")
def list_blobs(
    prefix: Optional[str] = Query(None),
    principal: Principal = Depends(get_principal),
    gateway: BlobGateway = Depends(get_blob_gateway),
):
    return gateway.list(principal, prefix)


@router.post("/storage/signed-url")
def signed_url(
    payload: SignedUrlRequest,
    principal: Principal = Depends(get_principal),
    gateway: BlobGateway = Depends(get_blob_gateway),
):
    return gateway.signed_upload(
        principal, payload.filename, payload.content_type, size=payload.size
    )


# Public site


@router.get("/site/by-domain")
def site_by_domain(
    domain: Optional[str] = Query(None), db: DbClient = Depends(get_db_client)
):
    return public.lookup_by_domain(db, domain)


@router.get("/site/public/{site_id}")
def public_site(site_id: str, db: DbClient = Depends(get_db_client)):
    return public.get_public_site(db, site_id)


@router.get("/site/all")
def domain_sites(db: DbClient = Depends(get_db_client)):
    return public.list_domain_sites(db)
