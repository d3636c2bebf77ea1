"""Reference face detection engine backed by the YuNet ONNX model.

YuNet predicts a box and five keypoints per face. It has no contour or
classification heads, so contours and probabilities are never reported.
Roll is estimated from the eye line; pitch and yaw are reported as 0.
"""

from __future__ import annotations

import itertools
import logging
import math
import threading
from typing import TYPE_CHECKING

import cv2
import numpy as np

from facebridge.bridge.options import PerformanceMode
from facebridge.ml.engine import BoundingBox, LandmarkType, NativeFace, Point
from facebridge.ml.preprocessing import (
    nv21_to_bgr,
    pad_to_multiple,
    resize,
    rotate_image,
    to_nchw_float,
)

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from facebridge.bridge.options import DetectorOptions
    from facebridge.config import Settings
    from facebridge.ml.engine import InputImage
    from facebridge.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)

STRIDES: tuple[int, ...] = (8, 16, 32)

INPUT_SIZE: dict[PerformanceMode, int] = {
    PerformanceMode.FAST: 320,
    PerformanceMode.ACCURATE: 640,
}

# YuNet keypoint order.
KEYPOINT_LANDMARKS: tuple[LandmarkType, ...] = (
    LandmarkType.RIGHT_EYE,
    LandmarkType.LEFT_EYE,
    LandmarkType.NOSE_BASE,
    LandmarkType.MOUTH_RIGHT,
    LandmarkType.MOUTH_LEFT,
)


# ---------------------------------------------------------------------------
# Decoding helpers
# ---------------------------------------------------------------------------


def decode_outputs(
    outputs: dict[str, NDArray[np.float32]],
    input_width: int,
    input_height: int,
    score_threshold: float,
) -> tuple[NDArray[np.float32], NDArray[np.float32], NDArray[np.float32]]:
    """Decode YuNet stride heads into boxes, scores and keypoints.

    Returns:
        boxes (N, 4) as x1, y1, x2, y2; scores (N,); keypoints (N, 5, 2),
        all in input-tensor pixel coordinates.
    """
    all_boxes, all_scores, all_kps = [], [], []
    for stride in STRIDES:
        cols = input_width // stride
        rows = input_height // stride
        cls = outputs[f"cls_{stride}"].reshape(-1)
        obj = outputs[f"obj_{stride}"].reshape(-1)
        bbox = outputs[f"bbox_{stride}"].reshape(-1, 4)
        kps = outputs[f"kps_{stride}"].reshape(-1, 10)

        scores = np.sqrt(np.clip(cls, 0.0, 1.0) * np.clip(obj, 0.0, 1.0))
        keep = scores >= score_threshold
        if not np.any(keep):
            continue

        idx = np.nonzero(keep)[0]
        grid_x = (idx % cols).astype(np.float32)
        grid_y = (idx // cols).astype(np.float32)
        if idx.size and idx.max() >= rows * cols:
            raise ValueError(f"Head for stride {stride} larger than {cols}x{rows} grid")

        b = bbox[idx]
        cx = (grid_x + b[:, 0]) * stride
        cy = (grid_y + b[:, 1]) * stride
        w = np.exp(b[:, 2]) * stride
        h = np.exp(b[:, 3]) * stride
        all_boxes.append(np.stack([cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2], axis=1))
        all_scores.append(scores[idx])

        k = kps[idx].reshape(-1, 5, 2)
        kx = (k[:, :, 0] + grid_x[:, None]) * stride
        ky = (k[:, :, 1] + grid_y[:, None]) * stride
        all_kps.append(np.stack([kx, ky], axis=2))

    if not all_boxes:
        return (
            np.zeros((0, 4), dtype=np.float32),
            np.zeros((0,), dtype=np.float32),
            np.zeros((0, 5, 2), dtype=np.float32),
        )
    return (
        np.concatenate(all_boxes).astype(np.float32),
        np.concatenate(all_scores).astype(np.float32),
        np.concatenate(all_kps).astype(np.float32),
    )


def iou(box: NDArray[np.float32], others: NDArray[np.float32]) -> NDArray[np.float32]:
    """IoU of one x1,y1,x2,y2 box against an (N, 4) array."""
    x1 = np.maximum(box[0], others[:, 0])
    y1 = np.maximum(box[1], others[:, 1])
    x2 = np.minimum(box[2], others[:, 2])
    y2 = np.minimum(box[3], others[:, 3])
    inter = np.clip(x2 - x1, 0, None) * np.clip(y2 - y1, 0, None)
    area = (box[2] - box[0]) * (box[3] - box[1])
    other_areas = (others[:, 2] - others[:, 0]) * (others[:, 3] - others[:, 1])
    union = area + other_areas - inter
    return np.where(union > 0, inter / np.maximum(union, 1e-9), 0.0).astype(np.float32)


def nms(boxes: NDArray[np.float32], scores: NDArray[np.float32], threshold: float) -> list[int]:
    """Non-maximum suppression over x1,y1,x2,y2 boxes. Returns kept indices by descending score."""
    if len(boxes) == 0:
        return []
    xywh = np.concatenate([boxes[:, :2], boxes[:, 2:] - boxes[:, :2]], axis=1)
    kept = cv2.dnn.NMSBoxes(xywh.tolist(), scores.tolist(), 0.0, threshold)
    return [int(i) for i in np.asarray(kept).reshape(-1)]


def roll_from_eyes(right_eye: Point, left_eye: Point) -> float:
    """Head roll in degrees, positive when the head tilts counter-clockwise in the image."""
    return -math.degrees(math.atan2(left_eye.y - right_eye.y, left_eye.x - right_eye.x))


class IouTracker:
    """Assigns stable ids to faces across consecutive frames by box overlap."""

    def __init__(self, threshold: float) -> None:
        self._threshold = threshold
        self._ids = itertools.count()
        self._previous: list[tuple[int, NDArray[np.float32]]] = []

    def assign(self, boxes: NDArray[np.float32]) -> list[int]:
        assigned: list[int] = []
        available = list(self._previous)
        for box in boxes:
            match = None
            if available:
                overlaps = iou(box, np.stack([b for _, b in available]))
                best = int(np.argmax(overlaps))
                if overlaps[best] >= self._threshold:
                    match = available.pop(best)[0]
            assigned.append(match if match is not None else next(self._ids))
        self._previous = list(zip(assigned, boxes, strict=True))
        return assigned

    def reset(self) -> None:
        self._previous = []


# ---------------------------------------------------------------------------
# Engine and handle
# ---------------------------------------------------------------------------


class YuNetDetector:
    """Detector handle bound to one set of options."""

    def __init__(self, model_manager: ModelManager, settings: Settings, options: DetectorOptions) -> None:
        self._model_manager = model_manager
        self._model_name = settings.detection_model
        self._score_threshold = settings.score_threshold
        self._nms_threshold = settings.nms_threshold
        self._options = options
        self._input_size = INPUT_SIZE[options.performance_mode]
        self._tracker = IouTracker(settings.tracking_iou_threshold) if options.tracking_enabled else None
        self._lock = threading.Lock()
        self._closed = threading.Event()

    @property
    def options(self) -> DetectorOptions:
        return self._options

    def process(self, image: InputImage) -> list[NativeFace]:
        if self._closed.is_set():
            raise RuntimeError("Detector is closed")
        with self._lock:
            if self._closed.is_set():
                if self._tracker is not None:
                    self._tracker.reset()
                raise RuntimeError("Detector is closed")

            frame = rotate_image(nv21_to_bgr(image.data, image.width, image.height), image.rotation)
            frame_h, frame_w = frame.shape[:2]
            scale = min(1.0, self._input_size / max(frame_w, frame_h))
            resized = resize(frame, max(1, round(frame_w * scale)), max(1, round(frame_h * scale)))
            padded = pad_to_multiple(resized, STRIDES[-1])
            input_h, input_w = padded.shape[:2]

            session = self._model_manager.get_session(self._model_name)
            input_name = session.get_inputs()[0].name
            names = [o.name for o in session.get_outputs()]
            raw = session.run(names, {input_name: to_nchw_float(padded)})
            outputs = dict(zip(names, raw, strict=True))

            boxes, scores, kps = decode_outputs(outputs, input_w, input_h, self._score_threshold)
            keep = nms(boxes, scores, self._nms_threshold)
            boxes = boxes[keep] / scale
            kps = kps[keep] / scale

            min_width = self._options.min_face_size * frame_w
            wide_enough = (boxes[:, 2] - boxes[:, 0]) >= min_width
            boxes, kps = boxes[wide_enough], kps[wide_enough]

            tracking_ids = self._tracker.assign(boxes) if self._tracker is not None else [None] * len(boxes)
            return [
                self._to_face(box, points, tracking_id, frame_w, frame_h)
                for box, points, tracking_id in zip(boxes, kps, tracking_ids, strict=True)
            ]

    def close(self) -> None:
        """Mark the handle closed without waiting for an in-flight frame."""
        self._closed.set()

    def _to_face(
        self,
        box: NDArray[np.float32],
        points: NDArray[np.float32],
        tracking_id: int | None,
        frame_w: int,
        frame_h: int,
    ) -> NativeFace:
        keypoints = {
            landmark: Point(float(x), float(y)) for landmark, (x, y) in zip(KEYPOINT_LANDMARKS, points, strict=True)
        }
        bounding_box = BoundingBox(
            left=int(np.clip(np.floor(box[0]), 0, frame_w)),
            top=int(np.clip(np.floor(box[1]), 0, frame_h)),
            right=int(np.clip(np.ceil(box[2]), 0, frame_w)),
            bottom=int(np.clip(np.ceil(box[3]), 0, frame_h)),
        )
        return NativeFace(
            bounding_box=bounding_box,
            head_euler_angle_z=roll_from_eyes(keypoints[LandmarkType.RIGHT_EYE], keypoints[LandmarkType.LEFT_EYE]),
            tracking_id=tracking_id,
            landmarks=keypoints if self._options.landmarks_enabled else {},
        )


class YuNetEngine:
    """Builds YuNet detector handles sharing one cached ONNX session."""

    def __init__(self, model_manager: ModelManager, settings: Settings) -> None:
        self._model_manager = model_manager
        self._settings = settings

    def create_detector(self, options: DetectorOptions) -> YuNetDetector:
        if options.contours_enabled:
            logger.debug("Contours requested but %s has no contour head", self._settings.detection_model)
        if options.classification_enabled:
            logger.debug("Classification requested but %s has no classifier", self._settings.detection_model)
        return YuNetDetector(self._model_manager, self._settings, options)
