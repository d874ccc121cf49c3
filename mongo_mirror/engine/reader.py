"""
Source Reader — Count, then stream, the documents of one collection.

``batchSize`` is either "all" (no limit) or a positive integer used both
as a cap on the number of documents read and as the cursor's fetch batch
size. The count is taken with the same filter and limit as the cursor so
operators see exactly how many documents will be streamed.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple, Union

from ..errors import InvalidBatchSize, SourceQueryFailed
from ..reliability.retry import RetryConfig, retry_call
from ..stores.base import DocumentCursor, DocumentStore, StoreError, TransientStoreError

logger = logging.getLogger(__name__)

ALL = "all"


def parse_batch_size(value: Union[int, str, None], collection: Optional[str] = None) -> Optional[int]:
    """
    Resolve a batchSize setting to a limit.

    Returns:
        None for "all" (or unset), otherwise the positive integer

    Raises:
        InvalidBatchSize: For anything else
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidBatchSize(f"BatchSize must be a number or 'all', got {value!r}", collection)

    if isinstance(value, str):
        text = value.strip()
        if text == "" or text.lower() == ALL:
            return None
        try:
            value = int(text)
        except ValueError:
            raise InvalidBatchSize(f"BatchSize must be a number or 'all', got {text!r}", collection)

    if not isinstance(value, int) or value <= 0:
        raise InvalidBatchSize(f"BatchSize must be a positive number, got {value!r}", collection)
    return value


class SourceReader:
    """
    Opens cursors against the source store.

    Count and find are idempotent and retried on transient errors; any
    other store failure becomes ``SourceQueryFailed``.
    """

    def __init__(
        self,
        store: DocumentStore,
        database: str,
        read_retries: int = 2,
    ):
        self.store = store
        self.database = database
        self.retry_config = RetryConfig(
            max_retries=read_retries,
            retryable_exceptions=(TransientStoreError,),
        )

    def _read(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        return retry_call(
            func, *args,
            config=self.retry_config,
            deadline=self.store.deadline,
            **kwargs,
        )

    def count(self, collection: str, filter: Dict[str, Any], limit: Optional[int] = None) -> int:
        try:
            return self._read(self.store.count_documents, self.database, collection, filter, limit)
        except StoreError as e:
            raise SourceQueryFailed(f"count failed: {e}", collection=collection) from e

    def open(
        self,
        collection: str,
        filter: Dict[str, Any],
        limit: Optional[int] = None,
    ) -> Tuple[int, DocumentCursor]:
        """
        Count the matching documents and open a cursor over them.

        Returns:
            (count, cursor). The caller owns the cursor and must close it.

        Raises:
            SourceQueryFailed: If counting or opening the cursor fails
        """
        count = self.count(collection, filter, limit)
        logger.info(f"Collection {collection} has {count} documents to be imported")

        try:
            cursor = self._read(
                self.store.find, self.database, collection, filter,
                limit=limit, batch_size=limit,
            )
        except StoreError as e:
            raise SourceQueryFailed(f"find failed: {e}", collection=collection) from e

        return count, cursor
