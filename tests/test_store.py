"""Tests for the session-scoped detector store."""

from __future__ import annotations

import time
from unittest.mock import MagicMock

from facebridge.bridge.store import DetectorStore


def _handle() -> MagicMock:
    return MagicMock(name="handle")


class TestGetOrCreate:
    def test_creates_on_miss_and_reuses(self) -> None:
        store = DetectorStore()
        factory = MagicMock(side_effect=_handle)

        first = store.get_or_create("cam-1", factory)
        second = store.get_or_create("cam-1", factory)

        assert first is second
        factory.assert_called_once()
        assert store.get("cam-1") is first
        assert "cam-1" in store
        assert len(store) == 1

    def test_sessions_are_independent(self) -> None:
        store = DetectorStore()
        a = store.get_or_create("a", _handle)
        b = store.get_or_create("b", _handle)
        assert a is not b
        assert sorted(store.session_ids()) == ["a", "b"]

    def test_concurrent_creation_keeps_first_and_closes_duplicate(self) -> None:
        store = DetectorStore()
        winner = _handle()
        loser = _handle()

        def racing_factory() -> MagicMock:
            # Another caller stores its handle while this one is being built.
            store.get_or_create("cam-1", lambda: winner)
            return loser

        result = store.get_or_create("cam-1", racing_factory)

        assert result is winner
        assert store.get("cam-1") is winner
        loser.close.assert_called_once()
        winner.close.assert_not_called()
        assert len(store) == 1

    def test_get_unknown_returns_none(self) -> None:
        assert DetectorStore().get("missing") is None


class TestClose:
    def test_close_releases_and_removes(self) -> None:
        store = DetectorStore()
        handle = store.get_or_create("cam-1", _handle)

        assert store.close("cam-1") is True

        handle.close.assert_called_once()
        assert store.get("cam-1") is None
        assert len(store) == 0

    def test_close_unknown_is_noop(self) -> None:
        store = DetectorStore()
        handle = store.get_or_create("cam-1", _handle)

        assert store.close("other") is False

        handle.close.assert_not_called()
        assert store.session_ids() == ["cam-1"]

    def test_failing_close_still_removes(self) -> None:
        store = DetectorStore()
        handle = store.get_or_create("cam-1", _handle)
        handle.close.side_effect = RuntimeError("boom")

        assert store.close("cam-1") is True
        assert "cam-1" not in store

    def test_close_all(self) -> None:
        store = DetectorStore()
        handles = [store.get_or_create(sid, _handle) for sid in ("a", "b", "c")]

        store.close_all()

        assert len(store) == 0
        for handle in handles:
            handle.close.assert_called_once()


class TestCloseIdle:
    def test_ttl_zero_disables_eviction(self) -> None:
        store = DetectorStore()
        store.get_or_create("cam-1", _handle)
        store._handles["cam-1"].last_used = time.monotonic() - 10_000

        assert store.close_idle(0) == []
        assert "cam-1" in store

    def test_expired_handles_closed(self) -> None:
        store = DetectorStore()
        stale = store.get_or_create("stale", _handle)
        fresh = store.get_or_create("fresh", _handle)
        store._handles["stale"].last_used = time.monotonic() - 10

        assert store.close_idle(1) == ["stale"]

        stale.close.assert_called_once()
        fresh.close.assert_not_called()
        assert store.session_ids() == ["fresh"]

    def test_get_refreshes_last_used(self) -> None:
        store = DetectorStore()
        store.get_or_create("cam-1", _handle)
        store._handles["cam-1"].last_used = time.monotonic() - 10

        store.get("cam-1")

        assert store.close_idle(1) == []
