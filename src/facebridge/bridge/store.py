"""Detector store: session-scoped cache of engine handles.

Handles are created on first use for a session id, reused for every later
frame of that session, and released on explicit close, idle eviction or
shutdown.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from facebridge.ml.engine import FaceDetectorHandle

logger = logging.getLogger(__name__)


@dataclass
class _CachedHandle:
    handle: FaceDetectorHandle
    last_used: float


class DetectorStore:
    """Thread-safe mapping of session id to detector handle."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: dict[str, _CachedHandle] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._handles

    # -- Public API ---------------------------------------------------------

    def get(self, session_id: str) -> FaceDetectorHandle | None:
        """Return the handle for ``session_id`` and mark it used, if present."""
        with self._lock:
            cached = self._handles.get(session_id)
            if cached is None:
                return None
            cached.last_used = time.monotonic()
            return cached.handle

    def get_or_create(
        self,
        session_id: str,
        factory: Callable[[], FaceDetectorHandle],
    ) -> FaceDetectorHandle:
        """Return the cached handle, building one with ``factory`` on a miss.

        The factory runs outside the lock. If another caller stored a handle
        for the same id in the meantime, the new one is closed and the
        stored one returned, so an entry is never overwritten.
        """
        existing = self.get(session_id)
        if existing is not None:
            return existing

        handle = factory()

        with self._lock:
            # Double-check: another caller may have created it while we built ours.
            winner = self._handles.get(session_id)
            if winner is None:
                self._handles[session_id] = _CachedHandle(handle=handle, last_used=time.monotonic())
                logger.info("Created detector for session %s", session_id)
                return handle
            winner.last_used = time.monotonic()

        logger.debug("Detector for session %s created concurrently; discarding duplicate", session_id)
        self._release(session_id, handle)
        return winner.handle

    def close(self, session_id: str) -> bool:
        """Release and forget the handle for ``session_id``.

        Returns False when there was nothing to close.
        """
        with self._lock:
            cached = self._handles.pop(session_id, None)
        if cached is None:
            return False
        self._release(session_id, cached.handle)
        logger.info("Closed detector for session %s", session_id)
        return True

    def close_idle(self, ttl: float) -> list[str]:
        """Close handles unused for longer than ``ttl`` seconds. ``ttl == 0`` disables eviction."""
        if ttl == 0:
            return []

        now = time.monotonic()
        with self._lock:
            expired = [sid for sid, cached in self._handles.items() if (now - cached.last_used) > ttl]
            evicted = [(sid, self._handles.pop(sid)) for sid in expired]
        for session_id, cached in evicted:
            self._release(session_id, cached.handle)
            logger.info("Evicted idle detector for session %s", session_id)
        return expired

    def close_all(self) -> None:
        """Close every handle. Used on shutdown."""
        with self._lock:
            drained = list(self._handles.items())
            self._handles.clear()
        for session_id, cached in drained:
            self._release(session_id, cached.handle)
        logger.info("All detectors closed (%d)", len(drained))

    def session_ids(self) -> list[str]:
        """Return ids of sessions that currently hold a handle."""
        with self._lock:
            return list(self._handles.keys())

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _release(session_id: str, handle: FaceDetectorHandle) -> None:
        try:
            handle.close()
        except Exception:
            logger.exception("Failed to close detector for session %s", session_id)
