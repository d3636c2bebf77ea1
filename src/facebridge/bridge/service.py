"""Detection bridge: request parsing, detector lifecycle and result marshalling."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from facebridge.bridge.errors import EngineFailure, InvalidConfiguration, InvalidRequest, MethodNotImplemented
from facebridge.bridge.image import parse_image_data
from facebridge.bridge.marshal import faces_to_payload
from facebridge.bridge.options import parse_options
from facebridge.ml.inference import QueueFull

if TYPE_CHECKING:
    from facebridge.bridge.store import DetectorStore
    from facebridge.config import Settings
    from facebridge.ml.engine import FaceDetectorHandle, FaceEngine, InputImage, NativeFace
    from facebridge.ml.inference import InferencePool

logger = logging.getLogger(__name__)

START = "vision#startFaceDetector"
CLOSE = "vision#closeFaceDetector"


class FaceDetectionBridge:
    """Routes detection requests to per-session engine handles."""

    def __init__(
        self,
        engine: FaceEngine,
        store: DetectorStore,
        pool: InferencePool,
        settings: Settings,
    ) -> None:
        self._engine = engine
        self._store = store
        self._pool = pool
        self._settings = settings

    @property
    def store(self) -> DetectorStore:
        return self._store

    async def handle_method_call(self, method: str, arguments: Mapping[str, Any]) -> list[dict[str, Any]] | None:
        """Dispatch a method-channel call by name.

        Raises:
            MethodNotImplemented: For any method other than start/close.
        """
        if method == START:
            return await self.start(
                arguments.get("id"),
                arguments.get("imageData"),
                arguments.get("options"),
            )
        if method == CLOSE:
            self.close(arguments.get("id"))
            return None
        raise MethodNotImplemented(method)

    async def start(
        self,
        session_id: Any,
        image_data: Any,
        options: Any = None,
    ) -> list[dict[str, Any]] | None:
        """Detect faces in one frame for a session.

        Returns the marshalled faces in engine order, or ``None`` when the
        request was malformed and strict request validation is off.

        Raises:
            InvalidRequest: Malformed id or image data in strict mode.
            InvalidConfiguration: No handle yet and options missing or invalid.
            EngineFailure: The engine failed to process the frame.
            QueueFull: The detection queue stayed full.
        """
        image = parse_image_data(image_data)
        if image is None or not isinstance(session_id, str) or not session_id:
            return self._drop(session_id, "image data" if image is None else "session id")

        handle = self._store.get(session_id)
        if handle is None:
            handle = self._create_handle(session_id, options)

        faces = await self._process(session_id, handle, image)
        return faces_to_payload(faces)

    def close(self, session_id: Any) -> None:
        """Release the detector for ``session_id``. Unknown ids are ignored."""
        if not isinstance(session_id, str):
            return
        self._store.close(session_id)

    def shutdown(self) -> None:
        """Close every open detector."""
        self._store.close_all()

    # -- Internal -----------------------------------------------------------

    def _drop(self, session_id: Any, what: str) -> None:
        if self._settings.strict_requests:
            raise InvalidRequest(f"Invalid {what}")
        logger.warning("Dropping detection request for session %r: invalid %s", session_id, what)
        return None

    def _create_handle(self, session_id: str, options: Any) -> FaceDetectorHandle:
        if not isinstance(options, Mapping):
            raise InvalidConfiguration("Invalid options")
        detector_options = parse_options(options)
        return self._store.get_or_create(
            session_id,
            lambda: self._engine.create_detector(detector_options),
        )

    async def _process(self, session_id: str, handle: FaceDetectorHandle, image: InputImage) -> list[NativeFace]:
        try:
            return await self._pool.run(handle.process, image)
        except QueueFull:
            raise
        except Exception as exc:
            logger.warning("Detection failed for session %s: %s", session_id, exc)
            raise EngineFailure(str(exc)) from exc
