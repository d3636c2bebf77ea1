"""Detector options parsing."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import numpy as np

from facebridge.bridge.errors import InvalidConfiguration


class PerformanceMode(StrEnum):
    FAST = "fast"
    ACCURATE = "accurate"


@dataclass(frozen=True)
class DetectorOptions:
    """Configuration a detector handle is built from."""

    performance_mode: PerformanceMode
    classification_enabled: bool
    landmarks_enabled: bool
    contours_enabled: bool
    tracking_enabled: bool
    min_face_size: float


_BOOLEAN_FIELDS: dict[str, str] = {
    "enableClassification": "classification_enabled",
    "enableLandmarks": "landmarks_enabled",
    "enableContours": "contours_enabled",
    "enableTracking": "tracking_enabled",
}


def parse_options(options: Mapping[str, Any]) -> DetectorOptions:
    """Build ``DetectorOptions`` from the wire mapping sent by a caller.

    Raises:
        InvalidConfiguration: If ``mode`` is not exactly ``"accurate"`` or
            ``"fast"``, or any required field is missing or mistyped.
    """
    mode = options.get("mode")
    try:
        performance_mode = PerformanceMode(mode) if isinstance(mode, str) else None
    except ValueError:
        performance_mode = None
    if performance_mode is None:
        raise InvalidConfiguration(f"Not a mode: {mode!r}")

    flags: dict[str, bool] = {}
    for wire_name, attr in _BOOLEAN_FIELDS.items():
        value = options.get(wire_name)
        if not isinstance(value, bool):
            raise InvalidConfiguration(f"Option '{wire_name}' must be a boolean, got {value!r}")
        flags[attr] = value

    min_face_size = options.get("minFaceSize")
    if isinstance(min_face_size, bool) or not isinstance(min_face_size, (int, float)):
        raise InvalidConfiguration(f"Option 'minFaceSize' must be a number, got {min_face_size!r}")
    narrowed = float(np.float32(min_face_size))
    if not 0.0 < narrowed <= 1.0:
        raise InvalidConfiguration(f"Option 'minFaceSize' must be in (0, 1], got {min_face_size!r}")

    return DetectorOptions(performance_mode=performance_mode, min_face_size=narrowed, **flags)
