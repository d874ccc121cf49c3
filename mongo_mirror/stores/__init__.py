"""
Stores — Document store interface and implementations.
"""

from .base import Document, DocumentCursor, DocumentStore, StoreError, TransientStoreError
from .memory import MemoryStore
from .mongo import MongoStore

__all__ = [
    "Document",
    "DocumentCursor",
    "DocumentStore",
    "MemoryStore",
    "MongoStore",
    "StoreError",
    "TransientStoreError",
]
