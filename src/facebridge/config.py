"""Environment-based configuration for FaceBridge."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from FACEBRIDGE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FACEBRIDGE_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model selection
    detection_model: str = "yunet_2023mar"
    models_dir: str = "models"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    queue_timeout: float = Field(default=5.0, gt=0)

    # Request handling: malformed image data is dropped with a warning
    # unless strict mode turns it into an InvalidRequest error.
    strict_requests: bool = False

    # Detector sessions (0 = never evict)
    detector_ttl: int = Field(default=0, ge=0)
    eviction_interval: float = Field(default=30.0, gt=0)

    # Detection post-processing
    score_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    nms_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    tracking_iou_threshold: float = Field(default=0.3, ge=0.0, le=1.0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
