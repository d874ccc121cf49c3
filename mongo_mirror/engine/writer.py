"""
Destination Writer — Drain a source cursor into the destination.

Each document is stamped with the destination tenant (overwriting any
value it had), then written with the collection's strategy:

- upsert (default): one ``update_one({_id: ...}, {"$set": doc}, upsert=True)``
  per document, as the cursor streams; constant memory
- insert: collect everything, then a single ``insert_many`` once the
  cursor is exhausted; no call at all when nothing matched

The first failed write aborts the collection. Errors raised out of
``drain()`` carry the number of documents already written in
``details["copied"]`` (always 0 for insert mode, which is all-or-nothing).
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from bson.binary import Binary

from ..errors import MirrorError, SourceQueryFailed, WriteFailed
from ..stores.base import Document, DocumentCursor, DocumentStore, StoreError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class DestinationWriter:
    """Writes one collection's documents to the destination store."""

    def __init__(
        self,
        store: DocumentStore,
        database: str,
        tenant: Optional[Binary] = None,
        tenant_field: str = "TenantId",
        id_field: str = "_id",
    ):
        self.store = store
        self.database = database
        self.tenant = tenant
        self.tenant_field = tenant_field
        self.id_field = id_field

    def stamp(self, document: Document) -> Document:
        """Overwrite the tenant field with the destination tenant."""
        if self.tenant is not None:
            document[self.tenant_field] = self.tenant
        return document

    def drain(
        self,
        collection: str,
        cursor: DocumentCursor,
        upsert: bool = True,
        progress: Optional[ProgressCallback] = None,
    ) -> int:
        """
        Consume the cursor and write every document.

        The cursor is always closed, whether draining succeeds or fails.

        Returns:
            Number of documents copied

        Raises:
            SourceQueryFailed: Reading from the cursor failed
            WriteFailed: A write was rejected by the destination
        """
        with cursor:
            if upsert:
                return self._drain_upsert(collection, cursor, progress)
            return self._drain_insert(collection, cursor, progress)

    def _next(self, collection: str, cursor: DocumentCursor, copied: int) -> Optional[Document]:
        try:
            return cursor.next_document()
        except StoreError as e:
            raise SourceQueryFailed(
                f"reading source cursor failed: {e}",
                collection=collection,
                details={"copied": copied},
            ) from e

    def _drain_upsert(
        self,
        collection: str,
        cursor: DocumentCursor,
        progress: Optional[ProgressCallback],
    ) -> int:
        copied = 0
        try:
            while True:
                document = self._next(collection, cursor, copied)
                if document is None:
                    break

                self.stamp(document)
                if self.id_field not in document:
                    raise WriteFailed(
                        f"document has no {self.id_field} field to upsert on",
                        collection=collection,
                    )

                try:
                    self.store.update_one(
                        self.database,
                        collection,
                        {self.id_field: document[self.id_field]},
                        document,
                        upsert=True,
                    )
                except StoreError as e:
                    raise WriteFailed(
                        f"upsert of {self.id_field}={document[self.id_field]!r} failed: {e}",
                        collection=collection,
                    ) from e

                copied += 1
                if progress:
                    progress(copied)
        except MirrorError as e:
            e.details.setdefault("copied", copied)
            raise

        return copied

    def _drain_insert(
        self,
        collection: str,
        cursor: DocumentCursor,
        progress: Optional[ProgressCallback],
    ) -> int:
        documents: List[Document] = []
        while True:
            document = self._next(collection, cursor, 0)
            if document is None:
                break
            documents.append(self.stamp(document))

        if not documents:
            logger.debug(f"No documents to insert into {collection}")
            return 0

        try:
            inserted = self.store.insert_many(self.database, collection, documents)
        except StoreError as e:
            raise WriteFailed(
                f"bulk insert of {len(documents)} documents failed: {e}",
                collection=collection,
                details={"copied": 0},
            ) from e

        if progress:
            progress(inserted)
        return inserted
