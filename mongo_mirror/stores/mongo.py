"""
Mongo Store — pymongo-backed DocumentStore.

Every operation runs inside ``pymongo.timeout()`` with whatever is left
of the run deadline, so a hung server cannot outlive the run. pymongo
errors are translated:

- timeouts caused by the deadline   → RunTimedOut
- ConnectionFailure / AutoReconnect → TransientStoreError (retryable reads)
- everything else                   → StoreError
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Mapping, Optional

import pymongo
from bson.errors import BSONError
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError

from ..errors import RunTimedOut
from ..reliability.deadline import Deadline
from .base import Document, DocumentCursor, DocumentStore, StoreError, TransientStoreError

logger = logging.getLogger(__name__)

APP_NAME = "mongo-mirror"


class MongoCursor(DocumentCursor):
    """Wraps a pymongo Cursor, applying the store's deadline to each fetch."""

    def __init__(self, store: "MongoStore", cursor: Any, operation: str):
        self._store = store
        self._cursor = cursor
        self._operation = operation

    def next_document(self) -> Optional[Document]:
        with self._store.operation(self._operation):
            try:
                return next(self._cursor)
            except StopIteration:
                return None

    def close(self) -> None:
        try:
            self._cursor.close()
        except PyMongoError as e:
            logger.warning(f"Failed to close cursor ({self._operation}): {e}")


class MongoStore(DocumentStore):
    """
    DocumentStore over a pymongo ``MongoClient``.

    The client is created lazily in ``connect()`` with
    ``uuidRepresentation="standard"`` so that UUIDs round-trip as BSON
    Binary subtype 4.
    """

    def __init__(
        self,
        connection_string: str,
        label: str,
        deadline: Optional[Deadline] = None,
        connect_timeout: float = 60,
        client_factory: Callable[..., Any] = MongoClient,
        **client_options: Any,
    ):
        super().__init__(label, deadline)
        self.connection_string = connection_string
        self.connect_timeout = connect_timeout
        self._client_factory = client_factory
        self._client_options = client_options
        self._client: Optional[Any] = None

    @property
    def client(self) -> Any:
        if self._client is None:
            raise StoreError(f"{self.label} store is not connected", "client")
        return self._client

    def _collection(self, database: str, collection: str) -> Any:
        return self.client[database][collection]

    def _translate(self, error: Exception, operation: str) -> Exception:
        if getattr(error, "timeout", False) and self.deadline is not None and self.deadline.expired():
            return RunTimedOut(f"{self.label} {operation} exceeded the run timeout: {error}")
        if isinstance(error, ConnectionFailure):
            return TransientStoreError(f"{self.label} {operation}: {error}", operation)
        return StoreError(f"{self.label} {operation}: {error}", operation)

    @contextmanager
    def operation(self, name: str) -> Iterator[None]:
        """Run a store call under the deadline, translating driver errors."""
        self.check_deadline(name)
        remaining = self.deadline.remaining() if self.deadline is not None else None
        try:
            with pymongo.timeout(remaining):
                yield
        except (PyMongoError, BSONError) as e:
            raise self._translate(e, name) from e

    def connect(self) -> None:
        timeout_ms = int(self.connect_timeout * 1000)
        options = {
            "uuidRepresentation": "standard",
            "serverSelectionTimeoutMS": timeout_ms,
            "connectTimeoutMS": timeout_ms,
            "appname": APP_NAME,
        }
        options.update(self._client_options)
        logger.info(f"Start connect mongodb {self.label}")
        try:
            self._client = self._client_factory(self.connection_string, **options)
        except (PyMongoError, ValueError) as e:
            raise StoreError(f"{self.label}: {e}", "connect") from e

    def ping(self, timeout: float) -> None:
        try:
            with pymongo.timeout(timeout):
                self.client.admin.command("ping")
        except PyMongoError as e:
            error = self._translate(e, "ping")
            if isinstance(error, RunTimedOut):
                raise error from e
            raise StoreError(f"failed to ping MongoDB -> {self.label}: {e}", "ping") from e
        logger.info(f"Successfully connected to MongoDB! {self.label}")

    def count_documents(
        self,
        database: str,
        collection: str,
        filter: Mapping[str, Any],
        limit: Optional[int] = None,
    ) -> int:
        kwargs = {"limit": limit} if limit else {}
        with self.operation(f"count {collection}"):
            return self._collection(database, collection).count_documents(filter, **kwargs)

    def find(
        self,
        database: str,
        collection: str,
        filter: Mapping[str, Any],
        limit: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> DocumentCursor:
        with self.operation(f"find {collection}"):
            cursor = self._collection(database, collection).find(
                filter,
                limit=limit or 0,
                batch_size=batch_size or 0,
            )
        return MongoCursor(self, cursor, f"read {collection}")

    def update_one(
        self,
        database: str,
        collection: str,
        match: Mapping[str, Any],
        document: Document,
        upsert: bool = True,
    ) -> None:
        with self.operation(f"update {collection}"):
            self._collection(database, collection).update_one(
                match, {"$set": document}, upsert=upsert
            )

    def insert_many(self, database: str, collection: str, documents: List[Document]) -> int:
        with self.operation(f"insert {collection}"):
            result = self._collection(database, collection).insert_many(documents)
        return len(result.inserted_ids)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.debug(f"Closed {self.label} connection")
