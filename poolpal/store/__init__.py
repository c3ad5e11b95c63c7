"""
PoolPal Store - document persistence backends.

- MemoryDocumentStore: in-process dicts
- SQLiteDocumentStore: key-value table via aiosqlite
- CachedDocumentStore: TTL read-through wrapper around either
"""

from .base import Document, DocumentStore, Predicate
from .memory import MemoryDocumentStore
from .sqlite import SQLiteDocumentStore
from .cached import CachedDocumentStore

__all__ = [
    "Document",
    "DocumentStore",
    "Predicate",
    "MemoryDocumentStore",
    "SQLiteDocumentStore",
    "CachedDocumentStore",
]
