"""Unit tests for the search audit log."""

import json

import pytest

from multifind.exceptions import StorageError
from multifind.logstore import JsonFileStorage, MemoryStorage, SearchLogStore, create_storage
from multifind.options import LogStoreOptions
from multifind.protocol import SearchLogEntry


def _entry(query: str, matches: int = 1) -> SearchLogEntry:
    return SearchLogEntry(timestamp="2025-01-01T00:00:00+00:00", query=query, match_count=matches)


class BrokenStorage:
    """Storage whose writes always fail."""

    def get(self, key, default=None):
        return default

    def set(self, key, value):
        raise StorageError("quota exceeded", key=key)


class TestMemoryStorage:
    def test_values_are_copied(self):
        """Test that mutating a returned value does not change storage."""
        storage = MemoryStorage()
        storage.set("k", [1, 2])
        storage.get("k").append(3)
        assert storage.get("k") == [1, 2]

    def test_default_when_missing(self):
        assert MemoryStorage().get("missing", []) == []

    def test_unserializable_value(self):
        with pytest.raises(StorageError):
            MemoryStorage().set("k", object())


class TestJsonFileStorage:
    def test_round_trip_on_disk(self, tmp_path):
        """Test that values persist across storage instances."""
        path = tmp_path / "nested" / "store.json"
        JsonFileStorage(path).set("searchLogs", [{"query": "cat"}])
        assert JsonFileStorage(path).get("searchLogs") == [{"query": "cat"}]
        assert json.loads(path.read_text(encoding="utf-8")) == {"searchLogs": [{"query": "cat"}]}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError, match="Invalid JSON"):
            JsonFileStorage(path).get("searchLogs")

    def test_non_object_root(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(StorageError):
            JsonFileStorage(path).get("searchLogs")

    def test_create_storage_selects_backend(self, tmp_path):
        assert isinstance(create_storage(LogStoreOptions()), MemoryStorage)
        assert isinstance(create_storage(LogStoreOptions(storage_path=str(tmp_path / "s.json"))), JsonFileStorage)


class TestSearchLogStore:
    """Tests for the capped ring buffer."""

    def test_append_and_read(self, log_store):
        log_store.initialize()
        assert log_store.append(_entry("cat", 3)) is True
        assert [(e.query, e.match_count) for e in log_store.entries()] == [("cat", 3)]

    def test_cap_evicts_oldest(self):
        """Test FIFO eviction once the cap is reached."""
        store = SearchLogStore(MemoryStorage(), LogStoreOptions(max_entries=3))
        for query in ("a", "b", "c", "d", "e"):
            store.append(_entry(query))
        assert [e.query for e in store.entries()] == ["c", "d", "e"]

    def test_default_cap_is_1000(self, log_store):
        for i in range(1005):
            log_store.append(_entry(f"q{i}"))
        entries = log_store.entries()
        assert len(entries) == 1000
        assert entries[0].query == "q5"

    def test_limit_keeps_most_recent(self, log_store):
        for query in ("a", "b", "c"):
            log_store.append(_entry(query))
        assert [e.query for e in log_store.entries(limit=2)] == ["b", "c"]
        assert log_store.entries(limit=0) == []

    def test_storage_failure_is_swallowed(self, caplog):
        """Test that a failing write is logged and reported, never raised."""
        store = SearchLogStore(BrokenStorage())
        assert store.append(_entry("cat")) is False
        assert "Error storing search log" in caplog.text

    def test_initialize_reset(self, log_store):
        log_store.append(_entry("cat"))
        log_store.initialize()
        assert len(log_store.entries()) == 1
        log_store.initialize(reset=True)
        assert log_store.entries() == []

    def test_malformed_entries_skipped(self):
        storage = MemoryStorage()
        storage.set("searchLogs", [{"query": 5}, _entry("ok").to_dict(), "junk"])
        assert [e.query for e in SearchLogStore(storage).entries()] == ["ok"]

    def test_non_list_value_is_storage_error(self, caplog):
        storage = MemoryStorage()
        storage.set("searchLogs", {"oops": True})
        store = SearchLogStore(storage)
        assert store.append(_entry("cat")) is False
        assert store.entries() == []
