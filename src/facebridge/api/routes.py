"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from facebridge.api.middleware import verify_api_key
from facebridge.api.schemas import (
    DetectRequest,
    DetectResponse,
    ErrorResponse,
    HealthResponse,
    ImageData,
    MethodCall,
    MethodCallResponse,
)
from facebridge.bridge.service import CLOSE

if TYPE_CHECKING:
    from facebridge.bridge.service import FaceDetectionBridge
    from facebridge.config import Settings
    from facebridge.ml.inference import InferencePool
    from facebridge.ml.model_manager import ModelManager

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
    status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_bridge(request: Request) -> FaceDetectionBridge:
    bridge: FaceDetectionBridge = request.app.state.bridge
    return bridge


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_model_manager(request: Request) -> ModelManager | None:
    return getattr(request.app.state, "model_manager", None)


def _decode_image_data(raw: Any) -> Any:
    """Turn base64 ``bytes`` into raw bytes; anything unparseable passes through untouched."""
    try:
        return ImageData.model_validate(raw).to_payload()
    except ValidationError:
        return raw


@router.post(
    "/method-channel",
    response_model=MethodCallResponse,
    responses={
        status.HTTP_204_NO_CONTENT: {"description": "Malformed request dropped"},
        status.HTTP_501_NOT_IMPLEMENTED: {"model": ErrorResponse},
        **_ERROR_RESPONSES,
    },
    summary="Invoke a bridge method by name",
)
async def method_channel(call: MethodCall, request: Request) -> Response:
    """Dispatch ``vision#startFaceDetector`` / ``vision#closeFaceDetector``."""
    bridge = _get_bridge(request)
    arguments = dict(call.arguments)
    if "imageData" in arguments:
        arguments["imageData"] = _decode_image_data(arguments["imageData"])

    result = await bridge.handle_method_call(call.method, arguments)
    if result is None and call.method != CLOSE:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return JSONResponse(content={"result": result})


@router.post(
    "/detectors/{session_id}/detect",
    response_model=DetectResponse,
    responses={
        status.HTTP_204_NO_CONTENT: {"description": "Malformed request dropped"},
        **_ERROR_RESPONSES,
    },
    summary="Detect faces in one frame of a session",
)
async def detect(session_id: str, body: DetectRequest, request: Request) -> Response:
    """Run detection for ``session_id``, creating its detector from ``options`` on first use."""
    bridge = _get_bridge(request)
    options = body.options.model_dump(by_alias=True, exclude_none=True) if body.options is not None else None
    faces = await bridge.start(session_id, body.image_data.to_payload(), options)
    if faces is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return JSONResponse(content={"faces": faces})


@router.delete(
    "/detectors/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Close a session's detector",
)
async def close_detector(session_id: str, request: Request) -> Response:
    """Release the detector for ``session_id``. Unknown ids are accepted silently."""
    _get_bridge(request).close(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    bridge = _get_bridge(request)
    model_manager = _get_model_manager(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        models_loaded=model_manager.get_loaded_models() if model_manager is not None else [],
        open_sessions=len(bridge.store),
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )
