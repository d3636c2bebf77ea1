"""Image preprocessing for the reference detector.

Decodes NV21 camera frames, rotates them upright and prepares the
planar tensor YuNet expects.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import cv2
import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray

_ROTATIONS: dict[int, int] = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def nv21_to_bgr(data: bytes, width: int, height: int) -> NDArray[np.uint8]:
    """Convert an NV21 buffer into an HxWx3 BGR uint8 array.

    Raises:
        ValueError: If ``data`` is too short for the given size, or a
            dimension is odd (NV21 subsamples chroma 2x2).
    """
    if width % 2 or height % 2:
        raise ValueError(f"NV21 frames need even dimensions, got {width}x{height}")
    needed = width * height * 3 // 2
    if len(data) < needed:
        raise ValueError(f"NV21 buffer too short: {len(data)} < {needed} bytes for {width}x{height}")

    yuv = np.frombuffer(data, dtype=np.uint8, count=needed).reshape(height * 3 // 2, width)
    return cv2.cvtColor(yuv, cv2.COLOR_YUV2BGR_NV21)


def rotate_image(image: NDArray[np.uint8], degrees: int) -> NDArray[np.uint8]:
    """Rotate clockwise by 0/90/180/270 degrees.

    Raises:
        ValueError: For any other angle.
    """
    if degrees == 0:
        return image
    try:
        return cv2.rotate(image, _ROTATIONS[degrees])
    except KeyError:
        raise ValueError(f"Unsupported rotation: {degrees}") from None


def resize(image: NDArray[np.uint8], width: int, height: int) -> NDArray[np.uint8]:
    """Resize to ``width`` x ``height``; no-op when the size already matches."""
    src_h, src_w = image.shape[:2]
    if (src_w, src_h) == (width, height):
        return image
    return cv2.resize(image, (width, height), interpolation=cv2.INTER_LINEAR)


def pad_to_multiple(image: NDArray[np.uint8], multiple: int) -> NDArray[np.uint8]:
    """Zero-pad bottom and right so both sides are multiples of ``multiple``."""
    h, w = image.shape[:2]
    pad_h = (-h) % multiple
    pad_w = (-w) % multiple
    if pad_h == 0 and pad_w == 0:
        return image
    return cv2.copyMakeBorder(image, 0, pad_h, 0, pad_w, cv2.BORDER_CONSTANT, value=(0, 0, 0))


def to_nchw_float(image: NDArray[np.uint8]) -> NDArray[np.float32]:
    """HxWx3 BGR uint8 -> 1x3xHxW float32 without scaling or channel swap."""
    return cv2.dnn.blobFromImage(image, scalefactor=1.0, swapRB=False, crop=False)
