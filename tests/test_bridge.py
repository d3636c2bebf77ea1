"""Tests for the detection bridge: handle lifecycle, dispatch and error reporting."""

from __future__ import annotations

import asyncio

import pytest
from conftest import StubEngine, image_data, make_settings, options, two_faces

from facebridge.bridge.errors import EngineFailure, InvalidConfiguration, InvalidRequest, MethodNotImplemented
from facebridge.bridge.options import PerformanceMode
from facebridge.bridge.service import CLOSE, START, FaceDetectionBridge
from facebridge.bridge.store import DetectorStore
from facebridge.ml.inference import InferencePool


class TestStart:
    async def test_two_faces_end_to_end(self, bridge: FaceDetectionBridge, engine: StubEngine) -> None:
        engine.faces = two_faces()

        faces = await bridge.start("cam-1", image_data(), options())

        assert faces is not None
        assert len(faces) == 2
        first, second = faces
        assert first["rect"] == {"left": 1, "top": 2, "right": 30, "bottom": 40}
        assert first["trackingId"] == 5
        assert "smilingProbability" not in first
        assert second["smilingProbability"] == 0.87
        assert "trackingId" not in second
        assert len(first["landmarks"]) == 10
        assert len(second["contours"]) == 15

    async def test_no_faces(self, bridge: FaceDetectionBridge) -> None:
        assert await bridge.start("cam-1", image_data(), options()) == []

    async def test_handle_built_from_options(self, bridge: FaceDetectionBridge, engine: StubEngine) -> None:
        await bridge.start("cam-1", image_data(), options(mode="accurate", enableTracking=True))

        (handle,) = engine.created
        assert handle.options.performance_mode is PerformanceMode.ACCURATE
        assert handle.options.tracking_enabled is True
        assert handle.images[0].width == 4

    async def test_handle_reused_without_options(
        self, bridge: FaceDetectionBridge, engine: StubEngine, store: DetectorStore
    ) -> None:
        await bridge.start("cam-1", image_data(), options())
        faces = await bridge.start("cam-1", image_data(rotation=90))

        assert faces == []
        assert len(engine.created) == 1
        assert len(engine.created[0].images) == 2
        assert store.session_ids() == ["cam-1"]

    async def test_new_options_ignored_for_existing_handle(self, bridge: FaceDetectionBridge, engine: StubEngine) -> None:
        await bridge.start("cam-1", image_data(), options(mode="fast"))
        await bridge.start("cam-1", image_data(), options(mode="accurate"))

        assert len(engine.created) == 1
        assert engine.created[0].options.performance_mode is PerformanceMode.FAST

    async def test_close_then_start_requires_options_again(
        self, bridge: FaceDetectionBridge, engine: StubEngine
    ) -> None:
        await bridge.start("cam-1", image_data(), options())
        bridge.close("cam-1")

        assert engine.created[0].closed is True
        with pytest.raises(InvalidConfiguration, match="Invalid options"):
            await bridge.start("cam-1", image_data())

        await bridge.start("cam-1", image_data(), options())
        assert len(engine.created) == 2
        assert engine.created[1] is not engine.created[0]

    async def test_missing_options_on_first_use(
        self, bridge: FaceDetectionBridge, engine: StubEngine, store: DetectorStore
    ) -> None:
        with pytest.raises(InvalidConfiguration, match="Invalid options") as exc_info:
            await bridge.start("cam-1", image_data())

        assert exc_info.value.code == "FaceDetectorError"
        assert engine.created == []
        assert len(store) == 0

    async def test_invalid_mode_reported_as_configuration_error(
        self, bridge: FaceDetectionBridge, engine: StubEngine, store: DetectorStore
    ) -> None:
        with pytest.raises(InvalidConfiguration, match="turbo"):
            await bridge.start("cam-1", image_data(), options(mode="turbo"))

        assert engine.created == []
        assert len(store) == 0

    async def test_engine_failure_keeps_handle(
        self, bridge: FaceDetectionBridge, engine: StubEngine, store: DetectorStore
    ) -> None:
        engine.error = RuntimeError("model crashed")

        with pytest.raises(EngineFailure, match="model crashed") as exc_info:
            await bridge.start("cam-1", image_data(), options())

        assert exc_info.value.code == "FaceDetectorError"
        assert store.session_ids() == ["cam-1"]
        assert engine.created[0].closed is False

        engine.error = None
        engine.faces = two_faces()
        faces = await bridge.start("cam-1", image_data())
        assert faces is not None
        assert len(faces) == 2
        assert len(engine.created) == 1

    async def test_engine_timeout_is_engine_failure(self, bridge: FaceDetectionBridge, engine: StubEngine) -> None:
        engine.error = TimeoutError("camera read timed out")

        with pytest.raises(EngineFailure, match="camera read timed out") as exc_info:
            await bridge.start("cam-1", image_data(), options())

        assert exc_info.value.code == "FaceDetectorError"

    async def test_concurrent_first_use_creates_one_handle(
        self, bridge: FaceDetectionBridge, engine: StubEngine, store: DetectorStore
    ) -> None:
        engine.delay = 0.05
        engine.faces = two_faces()

        first, second = await asyncio.gather(
            bridge.start("cam-1", image_data(), options()),
            bridge.start("cam-1", image_data(), options(mode="accurate")),
        )

        assert len(engine.created) == 1
        assert len(store) == 1
        assert len(engine.created[0].images) == 2
        assert first is not None and len(first) == 2
        assert second is not None and len(second) == 2

class TestMalformedRequests:
    @pytest.mark.parametrize("payload", [None, {"bytes": b"", "metadata": {}}, {"metadata": {"width": 4.0}}])
    async def test_bad_image_dropped(
        self, bridge: FaceDetectionBridge, engine: StubEngine, store: DetectorStore, payload: object
    ) -> None:
        assert await bridge.start("cam-1", payload, options()) is None
        assert engine.created == []
        assert len(store) == 0

    @pytest.mark.parametrize("session_id", [None, "", 42])
    async def test_bad_session_id_dropped(
        self, bridge: FaceDetectionBridge, engine: StubEngine, session_id: object
    ) -> None:
        assert await bridge.start(session_id, image_data(), options()) is None
        assert engine.created == []

    async def test_dropped_request_does_not_touch_existing_handle(
        self, bridge: FaceDetectionBridge, engine: StubEngine
    ) -> None:
        await bridge.start("cam-1", image_data(), options())
        assert await bridge.start("cam-1", None) is None
        assert len(engine.created[0].images) == 1

    async def test_strict_mode_raises(self, engine: StubEngine, store: DetectorStore) -> None:
        settings = make_settings(strict_requests=True)
        pool = InferencePool(settings)
        try:
            strict = FaceDetectionBridge(engine, store, pool, settings)
            with pytest.raises(InvalidRequest, match="image data"):
                await strict.start("cam-1", {"bytes": b"x"}, options())
            with pytest.raises(InvalidRequest, match="session id"):
                await strict.start("", image_data(), options())
        finally:
            pool.shutdown()
        assert engine.created == []


class TestClose:
    async def test_close_unknown_is_noop(self, bridge: FaceDetectionBridge, store: DetectorStore) -> None:
        await bridge.start("cam-1", image_data(), options())

        bridge.close("unknown")
        bridge.close(None)

        assert store.session_ids() == ["cam-1"]

    async def test_shutdown_closes_everything(
        self, bridge: FaceDetectionBridge, engine: StubEngine, store: DetectorStore
    ) -> None:
        await bridge.start("a", image_data(), options())
        await bridge.start("b", image_data(), options())

        bridge.shutdown()

        assert len(store) == 0
        assert all(handle.closed for handle in engine.created)


class TestMethodCalls:
    async def test_start_dispatch(self, bridge: FaceDetectionBridge, engine: StubEngine) -> None:
        engine.faces = two_faces()
        result = await bridge.handle_method_call(
            START,
            {"id": "cam-1", "imageData": image_data(), "options": options()},
        )
        assert result is not None
        assert len(result) == 2

    async def test_close_dispatch(
        self, bridge: FaceDetectionBridge, engine: StubEngine, store: DetectorStore
    ) -> None:
        await bridge.handle_method_call(START, {"id": "cam-1", "imageData": image_data(), "options": options()})

        assert await bridge.handle_method_call(CLOSE, {"id": "cam-1"}) is None
        assert len(store) == 0
        assert engine.created[0].closed is True

    async def test_unknown_method(self, bridge: FaceDetectionBridge) -> None:
        with pytest.raises(MethodNotImplemented, match="vision#somethingElse"):
            await bridge.handle_method_call("vision#somethingElse", {})
