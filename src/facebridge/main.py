"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from facebridge.config import Settings

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from facebridge.api.middleware import register_exception_handlers
from facebridge.api.routes import router
from facebridge.bridge.service import FaceDetectionBridge
from facebridge.bridge.store import DetectorStore
from facebridge.config import get_settings
from facebridge.ml.inference import InferencePool
from facebridge.ml.model_manager import OnnxModelManager
from facebridge.ml.yunet import YuNetEngine

logger = logging.getLogger(__name__)


async def evict_idle_detectors(store: DetectorStore, settings: Settings) -> None:
    """Periodically close detectors idle for longer than ``detector_ttl``."""
    while True:
        await asyncio.sleep(settings.eviction_interval)
        store.close_idle(settings.detector_ttl)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting FaceBridge (device=%s, max_concurrent=%s, detection=%s, detector_ttl=%s)",
        settings.device,
        settings.max_concurrent,
        settings.detection_model,
        settings.detector_ttl,
    )

    inference_pool = InferencePool(settings)
    model_manager = OnnxModelManager(settings)
    store = DetectorStore()
    bridge = FaceDetectionBridge(YuNetEngine(model_manager, settings), store, inference_pool, settings)
    app.state.inference_pool = inference_pool
    app.state.model_manager = model_manager
    app.state.bridge = bridge

    eviction_task = None
    if settings.detector_ttl > 0:
        eviction_task = asyncio.create_task(evict_idle_detectors(store, settings))

    logger.info("FaceBridge ready")
    yield

    logger.info("Shutting down FaceBridge")
    if eviction_task is not None:
        eviction_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await eviction_task
    bridge.shutdown()
    inference_pool.shutdown()
    model_manager.shutdown()
    logger.info("FaceBridge shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="FaceBridge",
        description="Face detection bridge with session-scoped detectors",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(application)
    application.include_router(router)
    return application


app = create_app()
