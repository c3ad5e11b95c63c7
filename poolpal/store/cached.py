"""
PoolPal Store - Read-through cache wrapper.

Wraps any DocumentStore with a MemoryCache. Single documents are
cached under ``<collection>:<id>``, whole collections under
``<collection>:*``. Every write invalidates both keys before returning
so readers in the same process never see a stale document.

A fill that raced a write is discarded: each key carries an
invalidation generation, read before the inner fetch and compared
before the result is cached.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..cache import MemoryCache
from .base import Document, DocumentStore, Predicate

logger = logging.getLogger("poolpal.store.cached")

_ALL = "*"


class CachedDocumentStore(DocumentStore):
    """TTL read-through cache in front of another store."""

    def __init__(self, inner: DocumentStore, cache: Optional[MemoryCache] = None, ttl: Optional[float] = None):
        self.inner = inner
        self.cache = cache or MemoryCache()
        self.ttl = ttl
        self._generations: Dict[str, int] = {}

    @property
    def name(self) -> str:
        return f"cached:{self.inner.name}"

    async def initialize(self) -> None:
        await self.inner.initialize()

    async def shutdown(self) -> None:
        await self.cache.clear()
        await self.inner.shutdown()

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        key = self._key(collection, doc_id)
        entry = await self.cache.get(key)
        if entry is not None:
            return copy.deepcopy(entry.value)

        token = self._token(collection, key)
        doc = await self.inner.get(collection, doc_id)
        if doc is not None:
            await self._fill(collection, key, token, doc)
        return doc

    async def list(
        self,
        collection: str,
        predicate: Optional[Predicate] = None,
    ) -> List[Document]:
        key = self._key(collection, _ALL)
        entry = await self.cache.get(key)
        if entry is not None:
            docs = copy.deepcopy(entry.value)
        else:
            token = self._token(collection, key)
            docs = await self.inner.list(collection)
            await self._fill(collection, key, token, docs)

        if predicate is None:
            return docs
        return [d for d in docs if predicate(d)]

    async def put(
        self,
        collection: str,
        doc_id: str,
        document: Document,
        merge: bool = False,
    ) -> None:
        await self.inner.put(collection, doc_id, document, merge=merge)
        await self.invalidate(collection, doc_id)

    async def delete(self, collection: str, doc_id: str) -> bool:
        deleted = await self.inner.delete(collection, doc_id)
        await self.invalidate(collection, doc_id)
        return deleted

    async def invalidate(self, collection: str, doc_id: Optional[str] = None) -> None:
        """Drop a document (and its collection listing), or the whole collection."""
        if doc_id is None:
            self._bump(collection)
            removed = await self.cache.clear(namespace=collection)
            logger.debug(f"Invalidated {removed} cached entries for {collection!r}")
            return
        doc_key = self._key(collection, doc_id)
        all_key = self._key(collection, _ALL)
        self._bump(doc_key)
        self._bump(all_key)
        await self.cache.delete(doc_key)
        await self.cache.delete(all_key)

    async def _fill(self, collection: str, key: str, token: Tuple[int, int], value: Any) -> None:
        if self._token(collection, key) != token:
            logger.debug(f"Skipped cache fill for {key!r}: invalidated during read")
            return
        await self.cache.set(key, copy.deepcopy(value), ttl=self.ttl, namespace=collection)
        # an invalidation may have queued behind the set
        if self._token(collection, key) != token:
            await self.cache.delete(key)

    def _token(self, collection: str, key: str) -> Tuple[int, int]:
        return self._generations.get(collection, 0), self._generations.get(key, 0)

    def _bump(self, name: str) -> None:
        self._generations[name] = self._generations.get(name, 0) + 1

    @staticmethod
    def _key(collection: str, doc_id: str) -> str:
        return f"{collection}:{doc_id}"
