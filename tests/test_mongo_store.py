"""
Tests for MongoStore with a mocked pymongo client.
"""

from unittest.mock import MagicMock

import pytest
from pymongo.errors import (
    AutoReconnect,
    ExecutionTimeout,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from mongo_mirror.errors import RunTimedOut
from mongo_mirror.reliability.deadline import Deadline
from mongo_mirror.stores.base import StoreError, TransientStoreError
from mongo_mirror.stores.mongo import MongoStore


class FakeCursor:
    def __init__(self, documents):
        self._documents = iter(documents)
        self.closed = False

    def __next__(self):
        return next(self._documents)

    def close(self):
        self.closed = True


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def collection(client):
    return client.__getitem__.return_value.__getitem__.return_value


@pytest.fixture
def store(client):
    store = MongoStore(
        "mongodb://localhost:27017",
        "destination",
        connect_timeout=5,
        client_factory=MagicMock(return_value=client),
    )
    store.connect()
    return store


class TestConnect:
    """Tests for connect and ping."""

    def test_client_options(self):
        factory = MagicMock()
        store = MongoStore("mongodb://localhost", "source", connect_timeout=5, client_factory=factory)

        store.connect()

        factory.assert_called_once_with(
            "mongodb://localhost",
            uuidRepresentation="standard",
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            appname="mongo-mirror",
        )

    def test_extra_client_options(self):
        factory = MagicMock()
        store = MongoStore("mongodb://localhost", "source", client_factory=factory, tls=True)

        store.connect()

        assert factory.call_args.kwargs["tls"] is True

    def test_ping(self, store, client):
        store.ping(5)
        client.admin.command.assert_called_once_with("ping")

    def test_ping_failure(self, store, client):
        client.admin.command.side_effect = ServerSelectionTimeoutError("no servers")

        with pytest.raises(StoreError, match="failed to ping MongoDB -> destination"):
            store.ping(5)

    def test_ping_timeout_after_deadline(self, store, client):
        """Test a ping cut short by the run deadline is RunTimedOut."""
        now = [0.0]
        store.deadline = Deadline(5, clock=lambda: now[0])

        def slow(*args, **kwargs):
            now[0] = 6.0
            raise ServerSelectionTimeoutError("timed out")

        client.admin.command.side_effect = slow

        with pytest.raises(RunTimedOut):
            store.ping(5)

    def test_not_connected(self):
        store = MongoStore("mongodb://localhost", "source", client_factory=MagicMock())

        with pytest.raises(StoreError, match="not connected"):
            store.count_documents("app", "orders", {})

    def test_close(self, store, client):
        store.close()

        client.close.assert_called_once()
        with pytest.raises(StoreError):
            store.ping(1)


class TestOperations:
    """Tests for reads and writes."""

    def test_count_without_limit(self, store, collection):
        collection.count_documents.return_value = 12

        assert store.count_documents("app", "orders", {"a": 1}) == 12
        collection.count_documents.assert_called_once_with({"a": 1})

    def test_count_with_limit(self, store, collection):
        store.count_documents("app", "orders", {}, limit=10)
        collection.count_documents.assert_called_once_with({}, limit=10)

    def test_find(self, store, collection):
        raw = FakeCursor([{"_id": 1}, {"_id": 2}])
        collection.find.return_value = raw

        cursor = store.find("app", "orders", {"a": 1}, limit=5, batch_size=5)
        with cursor:
            docs = list(cursor)

        assert docs == [{"_id": 1}, {"_id": 2}]
        assert raw.closed is True
        collection.find.assert_called_once_with({"a": 1}, limit=5, batch_size=5)

    def test_find_without_limit(self, store, collection):
        collection.find.return_value = FakeCursor([])

        store.find("app", "orders", {})

        collection.find.assert_called_once_with({}, limit=0, batch_size=0)

    def test_update_one_uses_set(self, store, collection):
        store.update_one("app", "orders", {"_id": 1}, {"_id": 1, "v": 2})

        collection.update_one.assert_called_once_with(
            {"_id": 1}, {"$set": {"_id": 1, "v": 2}}, upsert=True
        )

    def test_insert_many(self, store, collection):
        collection.insert_many.return_value.inserted_ids = [1, 2, 3]

        assert store.insert_many("app", "orders", [{}, {}, {}]) == 3


class TestErrorTranslation:
    """pymongo errors become store errors."""

    def test_connection_failure_is_transient(self, store, collection):
        collection.count_documents.side_effect = AutoReconnect("connection reset")

        with pytest.raises(TransientStoreError):
            store.count_documents("app", "orders", {})

    def test_operation_failure(self, store, collection):
        collection.update_one.side_effect = OperationFailure("not authorized", code=13)

        with pytest.raises(StoreError) as exc_info:
            store.update_one("app", "orders", {"_id": 1}, {"_id": 1})

        assert not isinstance(exc_info.value, TransientStoreError)
        assert exc_info.value.operation == "update orders"

    def test_timeout_after_deadline(self, store, collection):
        """Test a driver timeout once the run deadline has passed is RunTimedOut."""
        now = [0.0]
        store.deadline = Deadline(30, clock=lambda: now[0])

        def slow(*args, **kwargs):
            now[0] = 31.0
            raise ExecutionTimeout("operation exceeded time limit")

        collection.count_documents.side_effect = slow

        with pytest.raises(RunTimedOut):
            store.count_documents("app", "orders", {})

    def test_expired_deadline_skips_call(self, store, collection):
        now = [100.0]
        store.deadline = Deadline(30, clock=lambda: now[0])
        now[0] = 200.0

        with pytest.raises(RunTimedOut):
            store.count_documents("app", "orders", {})

        collection.count_documents.assert_not_called()

    def test_cursor_error_during_iteration(self, store, collection):
        class LostCursor(FakeCursor):
            def __next__(self):
                raise AutoReconnect("cursor lost")

        collection.find.return_value = LostCursor([])

        cursor = store.find("app", "orders", {})

        with pytest.raises(TransientStoreError):
            cursor.next_document()
