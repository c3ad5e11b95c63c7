"""
PoolPal Store - In-memory backend.

Used by tests and by the default ``store_backend = "memory"`` config.
"""

from __future__ import annotations

import copy
import logging
from collections import defaultdict
from typing import Dict, List, Optional

from .base import Document, DocumentStore, Predicate

logger = logging.getLogger("poolpal.store.memory")


class MemoryDocumentStore(DocumentStore):
    """Dict-of-dicts store. Every read and write deep-copies."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = defaultdict(dict)

    @property
    def name(self) -> str:
        return "memory"

    async def shutdown(self) -> None:
        self._collections.clear()

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        doc = self._collections[collection].get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def list(
        self,
        collection: str,
        predicate: Optional[Predicate] = None,
    ) -> List[Document]:
        docs = [copy.deepcopy(d) for d in self._collections[collection].values()]
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
        docs = self._collections[collection]
        if merge and doc_id in docs:
            merged = dict(docs[doc_id])
            merged.update(copy.deepcopy(document))
            docs[doc_id] = merged
        else:
            docs[doc_id] = copy.deepcopy(document)

    async def delete(self, collection: str, doc_id: str) -> bool:
        return self._collections[collection].pop(doc_id, None) is not None
