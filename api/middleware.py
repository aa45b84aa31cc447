"""
Global middleware and connect-flow error handlers.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from connectors.exceptions import (
    CallbackFailedError,
    ConnectError,
    MissingRequestTokenError,
    NoSuchConnectionError,
    ProviderExchangeError,
    UnknownProviderError,
    UnsupportedProviderError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = {
    UnknownProviderError: status.HTTP_404_NOT_FOUND,
    NoSuchConnectionError: status.HTTP_404_NOT_FOUND,
    UnsupportedProviderError: status.HTTP_400_BAD_REQUEST,
    MissingRequestTokenError: status.HTTP_400_BAD_REQUEST,
    ProviderExchangeError: status.HTTP_502_BAD_GATEWAY,
    CallbackFailedError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def register_middleware(app: FastAPI) -> None:
    """Attach any app-level middleware."""

    @app.middleware("http")
    async def request_timer(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.debug("%s %s — %.3fs", request.method, request.url.path, elapsed)
        return response


def register_exception_handlers(app: FastAPI) -> None:
    """Map connect-flow errors to HTTP responses."""

    @app.exception_handler(ConnectError)
    async def connect_error_handler(request: Request, exc: ConnectError) -> JSONResponse:
        status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )
