"""Tests for the session store cache and debounced persistence."""

import asyncio
from unittest.mock import MagicMock

import pytest

from src.sessions.store import SessionStore
from src.storage.json_store import JsonStore, StorageError


def _mock_storage(stored=None) -> MagicMock:
    storage = MagicMock(spec=JsonStore)
    storage.read_json.return_value = stored
    return storage


class TestHistory:
    """Tests for appending and reading history."""

    def test_new_conversation_is_empty(self, clock):
        """Unknown conversations start with no messages."""
        store = SessionStore(_mock_storage(), max_history=10, clock=clock)
        assert store.history("42") == []

    def test_append_and_limit(self, clock):
        """History is chronological and limit keeps the newest."""
        store = SessionStore(_mock_storage(), max_history=10, clock=clock)
        store.append("42", "user", "one")
        store.append("42", "assistant", "two")
        store.append("42", "user", "three")

        assert [m["content"] for m in store.history("42")] == ["one", "two", "three"]
        assert store.history("42", limit=2) == [
            {"role": "assistant", "content": "two"},
            {"role": "user", "content": "three"},
        ]

    def test_trims_to_max_history(self, clock):
        """Only the newest max_history messages are kept."""
        store = SessionStore(_mock_storage(), max_history=3, clock=clock)
        for i in range(5):
            store.append("42", "user", str(i))
        assert [m["content"] for m in store.history("42")] == ["2", "3", "4"]

    def test_total_survives_trimming(self, clock):
        """The running message count keeps growing past max_history."""
        store = SessionStore(_mock_storage(), max_history=3, clock=clock)
        for i in range(7):
            session = store.append("42", "user", str(i))
        assert len(session.messages) == 3
        assert session.total_messages == 7

    def test_total_persisted(self, clock):
        """Counters are written with the session."""
        storage = _mock_storage()
        store = SessionStore(storage, max_history=3, clock=clock)
        store.append("42", "user", "hi")

        written = storage.write_json.call_args.args[1]
        assert written["total_messages"] == 1
        assert written["memory_checked"] == 0

    def test_append_updates_last_activity(self, clock):
        """Activity time follows the clock."""
        store = SessionStore(_mock_storage(), max_history=10, clock=clock)
        clock.advance(minutes=3)
        session = store.append("42", "user", "hi")
        assert session.last_activity == clock.now

    def test_corrupt_stored_session_starts_fresh(self, clock):
        """Unreadable stored data is discarded."""
        store = SessionStore(
            _mock_storage({"messages": "not a list"}), max_history=10, clock=clock
        )
        assert store.history("42") == []


class TestPersistence:
    """Tests for flushing to storage."""

    def test_flushes_immediately_without_event_loop(self, clock):
        """Outside a running loop every append is written at once."""
        storage = _mock_storage()
        store = SessionStore(storage, max_history=10, clock=clock)
        store.append("42", "user", "hi")

        storage.write_json.assert_called_once()
        key, payload = storage.write_json.call_args.args
        assert key == "sessions/42"
        assert payload["messages"][0]["content"] == "hi"

    async def test_debounce_coalesces_writes(self, clock):
        """Appends inside the window produce one write with the final state."""
        storage = _mock_storage()
        store = SessionStore(storage, max_history=10, flush_delay=0.01, clock=clock)
        store.append("42", "user", "one")
        store.append("42", "assistant", "two")
        store.append("42", "user", "three")

        assert store.has_pending_flush("42")
        storage.write_json.assert_not_called()

        await asyncio.sleep(0.05)

        storage.write_json.assert_called_once()
        payload = storage.write_json.call_args.args[1]
        assert [m["content"] for m in payload["messages"]] == ["one", "two", "three"]
        assert not store.has_pending_flush("42")

    async def test_clear_cancels_pending_flush(self, clock):
        """A cleared session is deleted and never written back."""
        storage = _mock_storage()
        store = SessionStore(storage, max_history=10, flush_delay=0.01, clock=clock)
        store.append("42", "user", "secret")
        store.clear("42")

        await asyncio.sleep(0.05)

        storage.write_json.assert_not_called()
        storage.delete.assert_called_once_with("sessions/42")
        assert store.history("42") == []

    async def test_flush_all_writes_pending(self, clock):
        """Shutdown flushes every pending session synchronously."""
        storage = _mock_storage()
        store = SessionStore(storage, max_history=10, flush_delay=60, clock=clock)
        store.append("1", "user", "a")
        store.append("2", "user", "b")

        store.flush_all()

        assert storage.write_json.call_count == 2
        assert not store.has_pending_flush("1")
        assert not store.has_pending_flush("2")

    def test_write_failure_is_logged(self, clock):
        """Storage errors do not propagate to the caller."""
        storage = _mock_storage()
        storage.write_json.side_effect = StorageError("disk full")
        store = SessionStore(storage, max_history=10, clock=clock)

        session = store.append("42", "user", "hi")
        assert len(session.messages) == 1

    def test_clear_delete_failure_is_logged(self, clock):
        """A failed delete still drops the cached session."""
        storage = _mock_storage()
        storage.delete.side_effect = StorageError("read-only")
        store = SessionStore(storage, max_history=10, clock=clock)
        store.append("42", "user", "hi")

        store.clear("42")
        assert "42" not in store


class TestEviction:
    """Tests for the bounded cache."""

    def test_evicts_least_recently_active(self, clock, tmp_path):
        """The oldest session leaves memory once the cap is exceeded."""
        store = SessionStore(JsonStore(tmp_path), max_history=10, max_cached=2, clock=clock)
        for conversation_id in ("a", "b", "c"):
            clock.advance(seconds=1)
            store.append(conversation_id, "user", f"hello from {conversation_id}")

        assert sorted(store.cached_ids) == ["b", "c"]
        assert len(store) == 2

    def test_evicted_session_reloads_from_disk(self, clock, tmp_path):
        """Eviction is memory-only; history survives a reload."""
        store = SessionStore(JsonStore(tmp_path), max_history=10, max_cached=2, clock=clock)
        for conversation_id in ("a", "b", "c"):
            clock.advance(seconds=1)
            store.append(conversation_id, "user", f"hello from {conversation_id}")

        assert store.history("a") == [{"role": "user", "content": "hello from a"}]
        assert "a" in store
        assert len(store) == 2

    def test_accessed_session_is_never_evicted(self, clock):
        """The session being loaded is kept even when it is the least recent."""
        stale = {"messages": [], "last_activity": "2026-01-01T00:00:00+00:00"}
        store = SessionStore(_mock_storage(stale), max_history=10, max_cached=1, clock=clock)
        clock.advance(seconds=10)
        store.append("new", "user", "hi")

        store.get("old")
        assert store.cached_ids == ["old"]

    async def test_evicted_unflushed_session_served_from_memory(self, clock):
        """A session evicted before its flush keeps its unsaved messages."""
        storage = _mock_storage()
        store = SessionStore(
            storage, max_history=10, max_cached=1, flush_delay=60, clock=clock
        )
        store.append("a", "user", "unsaved")
        clock.advance(seconds=1)
        store.append("b", "user", "other")
        assert "a" not in store

        assert store.history("a") == [{"role": "user", "content": "unsaved"}]
        store.flush_all()

    @pytest.mark.parametrize("count", [0, 1, 2])
    def test_evict_noop_within_cap(self, clock, count):
        """Nothing is evicted while under the cap."""
        store = SessionStore(_mock_storage(), max_history=10, max_cached=2, clock=clock)
        for i in range(count):
            store.get(str(i))
        assert store.evict() == 0
