"""Conversion of engine results into wire payloads."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from facebridge.ml.engine import ContourType, LandmarkType

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from facebridge.ml.engine import NativeFace, Point

_OPTIONAL_FIELDS: tuple[tuple[str, str], ...] = (
    ("smilingProbability", "smiling_probability"),
    ("leftEyeOpenProbability", "left_eye_open_probability"),
    ("rightEyeOpenProbability", "right_eye_open_probability"),
    ("trackingId", "tracking_id"),
)


def _point(point: Point) -> list[float]:
    return [float(point.x), float(point.y)]


def _polyline(points: Sequence[Point]) -> list[list[float]]:
    return [_point(p) for p in points]


def face_to_dict(face: NativeFace) -> dict[str, Any]:
    """Map one engine face to its wire record.

    Every landmark and contour name is present; undetected ones are ``None``.
    Optional scalars are only included when the engine set them.
    """
    box = face.bounding_box
    data: dict[str, Any] = {
        "rect": {
            "left": int(box.left),
            "top": int(box.top),
            "right": int(box.right),
            "bottom": int(box.bottom),
        },
        "headEulerAngleX": face.head_euler_angle_x,
        "headEulerAngleY": face.head_euler_angle_y,
        "headEulerAngleZ": face.head_euler_angle_z,
    }
    for wire_name, attr in _OPTIONAL_FIELDS:
        value = getattr(face, attr)
        if value is not None:
            data[wire_name] = value

    landmarks: dict[str, list[float] | None] = {}
    for landmark in LandmarkType:
        point = face.landmarks.get(landmark)
        landmarks[landmark.value] = _point(point) if point is not None else None
    data["landmarks"] = landmarks

    contours: dict[str, list[list[float]] | None] = {}
    for contour in ContourType:
        points = face.contours.get(contour)
        contours[contour.value] = _polyline(points) if points is not None else None
    data["contours"] = contours
    return data


def faces_to_payload(faces: Iterable[NativeFace]) -> list[dict[str, Any]]:
    """Map engine faces to wire records, keeping the engine's order."""
    return [face_to_dict(face) for face in faces]
