"""Pydantic request/response schemas for the FaceBridge API."""

from __future__ import annotations

from typing import Any

from pydantic import Base64Bytes, BaseModel, ConfigDict, Field, StrictFloat, StrictInt


class ImageMetadata(BaseModel):
    """Frame geometry. Width and height may be sent as floats; strings are rejected."""

    width: StrictInt | StrictFloat | None = None
    height: StrictInt | StrictFloat | None = None
    rotation: StrictInt | None = Field(default=None, description="Clockwise rotation: 0, 90, 180 or 270")


class ImageData(BaseModel):
    """An NV21 frame with base64-encoded bytes."""

    bytes: Base64Bytes | None = None
    metadata: ImageMetadata | None = None

    def to_payload(self) -> dict[str, Any]:
        """Plain mapping with the decoded frame bytes, as the bridge expects it.

        ``model_dump`` would re-encode ``bytes`` to base64.
        """
        return {
            "bytes": self.bytes,
            "metadata": self.metadata.model_dump() if self.metadata is not None else None,
        }


class DetectorOptionsModel(BaseModel):
    """Detector options as sent on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    mode: str | None = Field(default=None, description="'fast' or 'accurate'")
    enable_classification: bool | None = Field(default=None, alias="enableClassification")
    enable_landmarks: bool | None = Field(default=None, alias="enableLandmarks")
    enable_contours: bool | None = Field(default=None, alias="enableContours")
    enable_tracking: bool | None = Field(default=None, alias="enableTracking")
    min_face_size: float | None = Field(default=None, alias="minFaceSize")


class MethodCall(BaseModel):
    """A method-channel invocation: a method name plus its argument bundle."""

    method: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class MethodCallResponse(BaseModel):
    """Successful method-channel result (``None`` for close)."""

    result: list[dict[str, Any]] | None = None


class DetectRequest(BaseModel):
    """Body of the REST detect endpoint."""

    image_data: ImageData = Field(alias="imageData")
    options: DetectorOptionsModel | None = None


class Rect(BaseModel):
    left: int
    top: int
    right: int
    bottom: int


class DetectedFace(BaseModel):
    """A detected face. Optional fields are omitted when the engine did not compute them."""

    model_config = ConfigDict(populate_by_name=True)

    rect: Rect
    head_euler_angle_x: float = Field(alias="headEulerAngleX")
    head_euler_angle_y: float = Field(alias="headEulerAngleY")
    head_euler_angle_z: float = Field(alias="headEulerAngleZ")
    smiling_probability: float | None = Field(default=None, alias="smilingProbability")
    left_eye_open_probability: float | None = Field(default=None, alias="leftEyeOpenProbability")
    right_eye_open_probability: float | None = Field(default=None, alias="rightEyeOpenProbability")
    tracking_id: int | None = Field(default=None, alias="trackingId")
    landmarks: dict[str, list[float] | None]
    contours: dict[str, list[list[float]] | None]


class DetectResponse(BaseModel):
    faces: list[DetectedFace]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    models_loaded: list[str]
    open_sessions: int
    concurrent_requests: int
    queue_depth: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    code: str = Field(description="'FaceDetectorError', 'notImplemented' or 'busy'")
    message: str
    details: Any = None
