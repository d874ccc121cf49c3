"""
Document Store Base Class — Interface for source and destination stores.

The transfer pipeline only talks to stores through this interface:
connect, ping, count, find, update-one-with-upsert and insert-many.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Mapping, Optional

from ..reliability.deadline import Deadline

Document = Dict[str, Any]


class StoreError(Exception):
    """A store operation failed."""

    def __init__(self, message: str, operation: str = ""):
        self.operation = operation
        super().__init__(message)


class TransientStoreError(StoreError):
    """A store operation failed for a reason worth retrying (network blip)."""


class DocumentCursor(ABC):
    """
    Forward-only, finite, non-restartable sequence of documents.

    Cursors must be closed; use them as context managers.
    """

    @abstractmethod
    def next_document(self) -> Optional[Document]:
        """Return the next document, or None once exhausted."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def __iter__(self) -> Iterator[Document]:
        while True:
            document = self.next_document()
            if document is None:
                return
            yield document

    def __enter__(self) -> "DocumentCursor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class DocumentStore(ABC):
    """
    Abstract base class for document stores.

    ``label`` names the side of the mirror ("source" or "destination") in
    logs and errors. ``deadline`` bounds every operation.
    """

    def __init__(self, label: str, deadline: Optional[Deadline] = None):
        self.label = label
        self.deadline = deadline

    def check_deadline(self, operation: str) -> None:
        if self.deadline is not None:
            self.deadline.check(f"{self.label} {operation}")

    @abstractmethod
    def connect(self) -> None:
        """Open the connection. Raises StoreError on failure."""
        pass

    @abstractmethod
    def ping(self, timeout: float) -> None:
        """Health check. Raises StoreError if the server does not answer."""
        pass

    @abstractmethod
    def count_documents(
        self,
        database: str,
        collection: str,
        filter: Mapping[str, Any],
        limit: Optional[int] = None,
    ) -> int:
        pass

    @abstractmethod
    def find(
        self,
        database: str,
        collection: str,
        filter: Mapping[str, Any],
        limit: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> DocumentCursor:
        pass

    @abstractmethod
    def update_one(
        self,
        database: str,
        collection: str,
        match: Mapping[str, Any],
        document: Document,
        upsert: bool = True,
    ) -> None:
        """Apply ``{"$set": document}`` to the first match, inserting if absent."""
        pass

    @abstractmethod
    def insert_many(self, database: str, collection: str, documents: List[Document]) -> int:
        """Insert all documents. Returns the number inserted."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self) -> "DocumentStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
