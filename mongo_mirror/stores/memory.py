"""
Memory Store — In-process DocumentStore.

Keeps documents in ordered lists and evaluates the subset of the MongoDB
query language the mirror produces: equality, ``$in``, ``$nin``, ``$ne``,
``$eq``, ``$exists``, range operators, ``$and``, ``$or`` and ``$nor``,
with dotted paths and array-contains semantics. Upserts apply ``$set``
the way the server does.

Failures can be injected per operation to exercise error paths:

    store = MemoryStore("destination")
    store.inject("update_one", StoreError("disk full"), after=2)
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..reliability.deadline import Deadline
from .base import Document, DocumentCursor, DocumentStore, StoreError

logger = logging.getLogger(__name__)

_MISSING = object()


def _resolve(document: Mapping[str, Any], path: str) -> Any:
    current: Any = document
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _candidates(value: Any) -> List[Any]:
    # A field holding an array matches if the array or any element matches.
    if isinstance(value, list):
        return [value] + list(value)
    return [value]


def _equals(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    return any(c == expected for c in _candidates(value))


def _compare(value: Any, op: str, operand: Any) -> bool:
    if value is _MISSING:
        return False
    for candidate in _candidates(value):
        try:
            if op == "$gt" and candidate > operand:
                return True
            if op == "$gte" and candidate >= operand:
                return True
            if op == "$lt" and candidate < operand:
                return True
            if op == "$lte" and candidate <= operand:
                return True
        except TypeError:
            continue
    return False


def _match_operators(value: Any, condition: Mapping[str, Any]) -> bool:
    for op, operand in condition.items():
        if op == "$eq":
            ok = _equals(value, operand)
        elif op == "$ne":
            ok = not _equals(value, operand)
        elif op == "$in":
            ok = any(_equals(value, item) for item in operand)
        elif op == "$nin":
            ok = not any(_equals(value, item) for item in operand)
        elif op == "$exists":
            ok = (value is not _MISSING) == bool(operand)
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            ok = _compare(value, op, operand)
        else:
            raise StoreError(f"unsupported operator {op}", "find")
        if not ok:
            return False
    return True


def matches(document: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    """Evaluate a query filter against one document."""
    for key, condition in filter.items():
        if key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
        elif key == "$nor":
            if any(matches(document, sub) for sub in condition):
                return False
        elif key.startswith("$"):
            raise StoreError(f"unsupported operator {key}", "find")
        else:
            value = _resolve(document, key)
            is_operator_doc = (
                isinstance(condition, Mapping)
                and condition
                and all(str(k).startswith("$") for k in condition)
            )
            if is_operator_doc:
                if not _match_operators(value, condition):
                    return False
            elif not _equals(value, condition):
                return False
    return True


@dataclass
class _Fault:
    error: Exception
    after: int = 0
    calls: int = 0


class MemoryCursor(DocumentCursor):
    """Cursor over a snapshot of matching documents."""

    def __init__(self, store: "MemoryStore", documents: List[Document], collection: str):
        self._store = store
        self._documents = documents
        self._collection = collection
        self._position = 0
        self.closed = False

    def next_document(self) -> Optional[Document]:
        if self.closed:
            raise StoreError("cursor is closed", "read")
        self._store.check_deadline(f"read {self._collection}")
        self._store._maybe_fail("next")
        if self._position >= len(self._documents):
            return None
        document = self._documents[self._position]
        self._position += 1
        return copy.deepcopy(document)

    def close(self) -> None:
        self.closed = True
        self._store.closed_cursors += 1


class MemoryStore(DocumentStore):
    """
    DocumentStore held entirely in memory.

    ``calls`` records every operation as ``(operation, collection)`` so
    tests can assert on what was (or was not) issued.
    """

    def __init__(
        self,
        label: str = "memory",
        deadline: Optional[Deadline] = None,
        data: Optional[Dict[str, Dict[str, List[Document]]]] = None,
    ):
        super().__init__(label, deadline)
        self._data: Dict[str, Dict[str, List[Document]]] = copy.deepcopy(data or {})
        self._faults: Dict[str, _Fault] = {}
        self.calls: List[Tuple[str, str]] = []
        self.connected = False
        self.closed_cursors = 0

    # ─── Test helpers ───────────────────────────────────────

    def seed(self, database: str, collection: str, documents: List[Document]) -> None:
        self._data.setdefault(database, {}).setdefault(collection, []).extend(
            copy.deepcopy(documents)
        )

    def documents(self, database: str, collection: str) -> List[Document]:
        return copy.deepcopy(self._data.get(database, {}).get(collection, []))

    def inject(self, operation: str, error: Exception, after: int = 0) -> None:
        """Make ``operation`` raise ``error`` once it has succeeded ``after`` times."""
        self._faults[operation] = _Fault(error=error, after=after)

    def calls_for(self, operation: str) -> List[str]:
        return [collection for op, collection in self.calls if op == operation]

    def _maybe_fail(self, operation: str) -> None:
        fault = self._faults.get(operation)
        if fault is None:
            return
        fault.calls += 1
        if fault.calls > fault.after:
            raise fault.error

    def _records(self, database: str, collection: str) -> List[Document]:
        return self._data.setdefault(database, {}).setdefault(collection, [])

    def _begin(self, operation: str, collection: str) -> None:
        self.calls.append((operation, collection))
        self.check_deadline(f"{operation} {collection}")
        self._maybe_fail(operation)

    # ─── DocumentStore ──────────────────────────────────────

    def connect(self) -> None:
        self._begin("connect", "")
        self.connected = True

    def ping(self, timeout: float) -> None:
        self._begin("ping", "")
        if not self.connected:
            raise StoreError(f"{self.label} store is not connected", "ping")

    def count_documents(
        self,
        database: str,
        collection: str,
        filter: Mapping[str, Any],
        limit: Optional[int] = None,
    ) -> int:
        self._begin("count", collection)
        count = sum(1 for doc in self._records(database, collection) if matches(doc, filter))
        return min(count, limit) if limit else count

    def find(
        self,
        database: str,
        collection: str,
        filter: Mapping[str, Any],
        limit: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> DocumentCursor:
        self._begin("find", collection)
        found = [doc for doc in self._records(database, collection) if matches(doc, filter)]
        if limit:
            found = found[:limit]
        return MemoryCursor(self, found, collection)

    def update_one(
        self,
        database: str,
        collection: str,
        match: Mapping[str, Any],
        document: Document,
        upsert: bool = True,
    ) -> None:
        self._begin("update_one", collection)
        records = self._records(database, collection)
        for existing in records:
            if matches(existing, match):
                existing.update(copy.deepcopy(document))
                return
        if upsert:
            created = {k: v for k, v in match.items() if not k.startswith("$")}
            created.update(copy.deepcopy(document))
            records.append(created)

    def insert_many(self, database: str, collection: str, documents: List[Document]) -> int:
        self._begin("insert_many", collection)
        if not documents:
            raise StoreError("documents must be a non-empty list", "insert_many")
        records = self._records(database, collection)
        existing_ids = {repr(doc.get("_id")) for doc in records if "_id" in doc}
        for doc in documents:
            key = repr(doc.get("_id"))
            if "_id" in doc and key in existing_ids:
                raise StoreError(f"E11000 duplicate key error: _id {doc['_id']!r}", "insert_many")
            existing_ids.add(key)
        records.extend(copy.deepcopy(documents))
        return len(documents)

    def close(self) -> None:
        self.connected = False
