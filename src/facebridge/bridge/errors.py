"""Error taxonomy for the detection bridge."""

from __future__ import annotations

FACE_DETECTOR_ERROR = "FaceDetectorError"


class FaceDetectorError(Exception):
    """Base class for every error reported back to a caller."""

    code: str = FACE_DETECTOR_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequest(FaceDetectorError):
    """Session id or image data could not be parsed."""


class InvalidConfiguration(FaceDetectorError):
    """Detector options are missing or invalid."""


class EngineFailure(FaceDetectorError):
    """The detection engine failed while processing a frame."""


class MethodNotImplemented(Exception):
    """The requested method name is not handled by the bridge."""

    code: str = "notImplemented"

    def __init__(self, method: str) -> None:
        super().__init__(f"Method not implemented: {method}")
        self.method = method
