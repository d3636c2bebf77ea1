"""Middleware: API key authentication and bridge error translation."""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from facebridge.api.schemas import ErrorResponse
from facebridge.bridge.errors import (
    EngineFailure,
    FaceDetectorError,
    InvalidConfiguration,
    InvalidRequest,
    MethodNotImplemented,
)
from facebridge.ml.inference import QueueFull

if TYPE_CHECKING:
    from fastapi import FastAPI

    from facebridge.config import Settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

_STATUS_BY_ERROR: dict[type[FaceDetectorError], int] = {
    InvalidRequest: status.HTTP_400_BAD_REQUEST,
    InvalidConfiguration: status.HTTP_422_UNPROCESSABLE_ENTITY,
    EngineFailure: status.HTTP_502_BAD_GATEWAY,
}


def _get_settings_from_request(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Check the Bearer token against the configured API key.

    If no API key is configured (FACEBRIDGE_API_KEY not set), all requests pass.
    If configured, requests must include 'Authorization: Bearer <key>'.
    """
    settings = _get_settings_from_request(request)
    if settings.api_key is None:
        return

    if credentials is None or not secrets.compare_digest(credentials.credentials.encode(), settings.api_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(code=code, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _face_detector_error_handler(request: Request, exc: FaceDetectorError) -> JSONResponse:
    status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return _error_response(status_code, exc.code, exc.message)


async def _not_implemented_handler(request: Request, exc: MethodNotImplemented) -> JSONResponse:
    return _error_response(status.HTTP_501_NOT_IMPLEMENTED, exc.code, str(exc))


async def _busy_handler(request: Request, exc: QueueFull) -> JSONResponse:
    logger.warning("Rejecting %s %s: detection queue full", request.method, request.url.path)
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "busy", "Detection queue is full, retry later")


def register_exception_handlers(app: FastAPI) -> None:
    """Map bridge errors onto HTTP responses carrying an ``ErrorResponse`` body."""
    app.add_exception_handler(FaceDetectorError, _face_detector_error_handler)
    app.add_exception_handler(MethodNotImplemented, _not_implemented_handler)
    app.add_exception_handler(QueueFull, _busy_handler)
