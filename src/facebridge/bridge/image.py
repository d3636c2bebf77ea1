"""Parsing of inbound image payloads."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from facebridge.ml.engine import ImageFormat, InputImage

VALID_ROTATIONS = frozenset({0, 90, 180, 270})


def nv21_buffer_size(width: int, height: int) -> int:
    """Bytes needed for an NV21 frame: full Y plane plus interleaved VU at quarter size."""
    return width * height + 2 * ((width + 1) // 2) * ((height + 1) // 2)


def _dimension(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    size = int(value)
    return size if size > 0 else None


def parse_image_data(image_data: Any) -> InputImage | None:
    """Build an ``InputImage`` from ``{"bytes": ..., "metadata": {...}}``.

    Returns ``None`` for anything that does not describe a complete NV21
    frame. Width and height may arrive as floats and are truncated.
    """
    if not isinstance(image_data, Mapping):
        return None
    data = image_data.get("bytes")
    if isinstance(data, (bytearray, memoryview)):
        data = bytes(data)
    if not isinstance(data, bytes):
        return None
    metadata = image_data.get("metadata")
    if not isinstance(metadata, Mapping):
        return None

    width = _dimension(metadata.get("width"))
    height = _dimension(metadata.get("height"))
    rotation = metadata.get("rotation")
    if width is None or height is None:
        return None
    if isinstance(rotation, bool) or not isinstance(rotation, int) or rotation not in VALID_ROTATIONS:
        return None
    if len(data) < nv21_buffer_size(width, height):
        return None

    return InputImage(data=data, width=width, height=height, rotation=rotation, format=ImageFormat.NV21)
