"""
FastAPI application entry point for the Sidey API.
"""

from __future__ import annotations

import logging

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from sidey.config import DEV_JWT_SECRET, get_settings
from sidey.errors import InternalError, SideyError
from sidey.resources import describe_validation_error
from sidey.routes import router

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def handle_sidey_error(request: Request, exc: SideyError) -> JSONResponse:
    return _error(exc.status_code, exc.message)


async def handle_http_exception(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        {"error": str(exc.detail)},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return _error(400, describe_validation_error(exc.errors()))


async def handle_store_failure(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Store failure on %s %s", request.method, request.url.path)
    return _error(InternalError.status_code, InternalError.default_message)


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    if settings.jwt_secret == DEV_JWT_SECRET and (
        settings.database_url and not settings.use_in_memory_backends
    ):
        logger.warning("JWT_SECRET is not set; using the development secret")

    app = FastAPI(title="Sidey CMS API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )
    app.add_exception_handler(SideyError, handle_sidey_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    for exc_type in (SQLAlchemyError, BotoCoreError, ClientError, Exception):
        app.add_exception_handler(exc_type, handle_store_failure)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
