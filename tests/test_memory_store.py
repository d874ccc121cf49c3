"""
Tests for the in-memory store and its query matcher.
"""

import pytest

from mongo_mirror.stores.base import StoreError
from mongo_mirror.stores.memory import MemoryStore, matches


class TestMatches:
    """Tests for the query matcher."""

    @pytest.mark.parametrize("flt,expected", [
        ({}, True),
        ({"Status": "open"}, True),
        ({"Status": "closed"}, False),
        ({"Status": {"$in": ["open", "new"]}}, True),
        ({"Status": {"$nin": ["open"]}}, False),
        ({"Status": {"$ne": "closed"}}, True),
        ({"Total": {"$gte": 10, "$lt": 20}}, True),
        ({"Total": {"$gt": 10}}, False),
        ({"Missing": {"$exists": False}}, True),
        ({"Missing": None}, True),
        ({"Address.City": "Lisbon"}, True),
        ({"Tags": "vip"}, True),
        ({"$and": [{"Status": "open"}, {"Total": 10}]}, True),
        ({"$or": [{"Status": "closed"}, {"Total": 10}]}, True),
        ({"$nor": [{"Status": "open"}]}, False),
    ])
    def test_operators(self, flt, expected):
        document = {
            "Status": "open",
            "Total": 10,
            "Address": {"City": "Lisbon"},
            "Tags": ["vip", "new"],
        }
        assert matches(document, flt) is expected

    def test_unsupported_operator(self):
        with pytest.raises(StoreError):
            matches({"a": 1}, {"a": {"$regex": "x"}})


class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_seed_and_count(self):
        store = MemoryStore()
        store.seed("app", "orders", [{"_id": 1}, {"_id": 2}, {"_id": 3}])

        assert store.count_documents("app", "orders", {}) == 3
        assert store.count_documents("app", "orders", {}, limit=2) == 2
        assert store.count_documents("app", "missing", {}) == 0

    def test_cursor_returns_copies(self):
        store = MemoryStore()
        store.seed("app", "orders", [{"_id": 1, "v": 1}])

        with store.find("app", "orders", {}) as cursor:
            doc = cursor.next_document()
        doc["v"] = 99

        assert store.documents("app", "orders")[0]["v"] == 1

    def test_closed_cursor(self):
        store = MemoryStore()
        cursor = store.find("app", "orders", {})
        cursor.close()

        with pytest.raises(StoreError):
            cursor.next_document()
        assert store.closed_cursors == 1

    def test_upsert_inserts_then_updates(self):
        store = MemoryStore()

        store.update_one("app", "orders", {"_id": 1}, {"_id": 1, "v": "a"})
        store.update_one("app", "orders", {"_id": 1}, {"v": "b"})

        assert store.documents("app", "orders") == [{"_id": 1, "v": "b"}]

    def test_update_without_upsert(self):
        store = MemoryStore()
        store.update_one("app", "orders", {"_id": 1}, {"v": "a"}, upsert=False)
        assert store.documents("app", "orders") == []

    def test_insert_many_rejects_empty(self):
        with pytest.raises(StoreError):
            MemoryStore().insert_many("app", "orders", [])

    def test_insert_many_duplicate_in_batch(self):
        store = MemoryStore()

        with pytest.raises(StoreError, match="duplicate key"):
            store.insert_many("app", "orders", [{"_id": 1}, {"_id": 1}])

        assert store.documents("app", "orders") == []

    def test_ping_requires_connect(self):
        store = MemoryStore()

        with pytest.raises(StoreError):
            store.ping(1)

        store.connect()
        store.ping(1)

    def test_inject_after(self):
        store = MemoryStore()
        store.inject("update_one", StoreError("boom"), after=1)

        store.update_one("app", "orders", {"_id": 1}, {})
        with pytest.raises(StoreError, match="boom"):
            store.update_one("app", "orders", {"_id": 2}, {})

    def test_calls_recorded(self):
        store = MemoryStore()
        store.count_documents("app", "orders", {})
        store.find("app", "items", {})

        assert store.calls == [("count", "orders"), ("find", "items")]
        assert store.calls_for("find") == ["items"]
