"""Shared fixtures: a scriptable in-memory detection engine and a bridge around it."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import pytest

from facebridge.bridge.service import FaceDetectionBridge
from facebridge.bridge.store import DetectorStore
from facebridge.config import Settings
from facebridge.ml.engine import BoundingBox, NativeFace
from facebridge.ml.inference import InferencePool

if TYPE_CHECKING:
    from collections.abc import Iterator

    from facebridge.bridge.options import DetectorOptions
    from facebridge.ml.engine import InputImage

WIDTH = 4
HEIGHT = 4


def nv21_bytes(width: int = WIDTH, height: int = HEIGHT, luma: int = 128, chroma: int = 128) -> bytes:
    return bytes([luma]) * (width * height) + bytes([chroma]) * (width * height // 2)


def image_data(width: int = WIDTH, height: int = HEIGHT, rotation: int = 0) -> dict[str, Any]:
    return {
        "bytes": nv21_bytes(width, height),
        "metadata": {"width": float(width), "height": float(height), "rotation": rotation},
    }


def options(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "mode": "fast",
        "enableClassification": True,
        "enableLandmarks": True,
        "enableContours": False,
        "enableTracking": False,
        "minFaceSize": 0.1,
    }
    data.update(overrides)
    return data


def two_faces() -> list[NativeFace]:
    return [
        NativeFace(
            bounding_box=BoundingBox(left=1, top=2, right=30, bottom=40),
            head_euler_angle_x=1.5,
            head_euler_angle_y=-2.0,
            head_euler_angle_z=3.25,
            tracking_id=5,
        ),
        NativeFace(
            bounding_box=BoundingBox(left=50, top=60, right=90, bottom=110),
            smiling_probability=0.87,
        ),
    ]


class StubHandle:
    def __init__(self, engine: StubEngine, options: DetectorOptions) -> None:
        self.engine = engine
        self.options = options
        self.images: list[InputImage] = []
        self.closed = False

    def process(self, image: InputImage) -> list[NativeFace]:
        self.images.append(image)
        if self.engine.delay:
            time.sleep(self.engine.delay)
        if self.engine.error is not None:
            raise self.engine.error
        return list(self.engine.faces)

    def close(self) -> None:
        self.closed = True


class StubEngine:
    """Engine whose results are set by the test."""

    def __init__(self) -> None:
        self.created: list[StubHandle] = []
        self.faces: list[NativeFace] = []
        self.error: Exception | None = None
        self.delay: float = 0.0

    def create_detector(self, options: DetectorOptions) -> StubHandle:
        handle = StubHandle(self, options)
        self.created.append(handle)
        return handle


def make_settings(**overrides: Any) -> Settings:
    defaults: dict[str, Any] = {"max_concurrent": 2, "strict_requests": False}
    defaults.update(overrides)
    return Settings(**defaults)


@pytest.fixture()
def engine() -> StubEngine:
    return StubEngine()


@pytest.fixture()
def store() -> DetectorStore:
    return DetectorStore()


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
def pool(settings: Settings) -> Iterator[InferencePool]:
    inference_pool = InferencePool(settings)
    yield inference_pool
    inference_pool.shutdown()


@pytest.fixture()
def bridge(engine: StubEngine, store: DetectorStore, pool: InferencePool, settings: Settings) -> FaceDetectionBridge:
    return FaceDetectionBridge(engine, store, pool, settings)
