"""Face detection engine contract.

The bridge never looks inside an engine. It builds one handle per session
through ``FaceEngine.create_detector`` and submits frames to
``FaceDetectorHandle.process``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from facebridge.bridge.options import DetectorOptions


class ImageFormat(StrEnum):
    NV21 = "nv21"


class LandmarkType(StrEnum):
    """Facial keypoints, valued by their wire names."""

    MOUTH_BOTTOM = "bottomMouth"
    MOUTH_RIGHT = "rightMouth"
    MOUTH_LEFT = "leftMouth"
    RIGHT_EYE = "rightEye"
    LEFT_EYE = "leftEye"
    RIGHT_EAR = "rightEar"
    LEFT_EAR = "leftEar"
    RIGHT_CHEEK = "rightCheek"
    LEFT_CHEEK = "leftCheek"
    NOSE_BASE = "noseBase"


class ContourType(StrEnum):
    """Facial outlines, valued by their wire names."""

    FACE = "face"
    LEFT_EYEBROW_TOP = "leftEyebrowTop"
    LEFT_EYEBROW_BOTTOM = "leftEyebrowBottom"
    RIGHT_EYEBROW_TOP = "rightEyebrowTop"
    RIGHT_EYEBROW_BOTTOM = "rightEyebrowBottom"
    LEFT_EYE = "leftEye"
    RIGHT_EYE = "rightEye"
    UPPER_LIP_TOP = "upperLipTop"
    UPPER_LIP_BOTTOM = "upperLipBottom"
    LOWER_LIP_TOP = "lowerLipTop"
    LOWER_LIP_BOTTOM = "lowerLipBottom"
    NOSE_BRIDGE = "noseBridge"
    NOSE_BOTTOM = "noseBottom"
    LEFT_CHEEK = "leftCheek"
    RIGHT_CHEEK = "rightCheek"


@dataclass(frozen=True)
class InputImage:
    """A single camera frame as received from the caller."""

    data: bytes
    width: int
    height: int
    rotation: int
    format: ImageFormat = ImageFormat.NV21


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class BoundingBox:
    """Face rectangle in integer pixel coordinates of the upright image."""

    left: int
    top: int
    right: int
    bottom: int


@dataclass(frozen=True)
class NativeFace:
    """A face as reported by an engine.

    ``None`` means the engine did not compute the value, which is distinct
    from a computed zero.
    """

    bounding_box: BoundingBox
    head_euler_angle_x: float = 0.0
    head_euler_angle_y: float = 0.0
    head_euler_angle_z: float = 0.0
    smiling_probability: float | None = None
    left_eye_open_probability: float | None = None
    right_eye_open_probability: float | None = None
    tracking_id: int | None = None
    landmarks: Mapping[LandmarkType, Point] = field(default_factory=dict)
    contours: Mapping[ContourType, Sequence[Point]] = field(default_factory=dict)


class FaceDetectorHandle(Protocol):
    """A configured detector instance owned by the engine."""

    def process(self, image: InputImage) -> list[NativeFace]:
        """Detect faces in a frame.

        Runs synchronously; the bridge schedules it on the inference pool.

        Raises:
            Exception: Any engine failure. The bridge reports its text.
        """
        ...

    def close(self) -> None:
        """Release the resources held by this handle."""
        ...


class FaceEngine(Protocol):
    """Factory for detector handles."""

    def create_detector(self, options: DetectorOptions) -> FaceDetectorHandle:
        """Build a detector configured with ``options``."""
        ...
