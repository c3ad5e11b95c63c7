"""
PoolPal Store - SQLite backend via aiosqlite.

Documents live in a single key-value table::

    documents(collection TEXT, id TEXT, body TEXT, PRIMARY KEY(collection, id))

``body`` holds the JSON-encoded document. Predicates are evaluated in
Python after decoding.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List, Optional

import aiosqlite

from ..faults import StoreFault
from .base import Document, DocumentStore, Predicate

logger = logging.getLogger("poolpal.store.sqlite")

__all__ = ["SQLiteDocumentStore"]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    body TEXT NOT NULL,
    PRIMARY KEY (collection, id)
)
"""

_UPSERT = """
INSERT INTO documents (collection, id, body) VALUES (?, ?, ?)
ON CONFLICT(collection, id) DO UPDATE SET body = excluded.body
"""


class SQLiteDocumentStore(DocumentStore):
    """
    SQLite document store.

    Features:
    - WAL journal mode for concurrent reads
    - Upsert-based writes
    - Serialized read-modify-write for merge puts
    """

    def __init__(self, path: str = "poolpal.db"):
        self._path = path
        self._connection: Any = None
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "sqlite"

    @property
    def path(self) -> str:
        return self._path

    async def initialize(self) -> None:
        if self._connection is not None:
            return
        async with self._lock:
            if self._connection is not None:
                return
            try:
                self._connection = await aiosqlite.connect(self._path)
            except (OSError, aiosqlite.Error) as exc:
                raise StoreFault(self.name, "connect", str(exc)) from exc
            self._connection.row_factory = aiosqlite.Row
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute(_SCHEMA)
            await self._connection.commit()
            logger.info(f"SQLite store opened: {self._path}")

    async def shutdown(self) -> None:
        if self._connection is None:
            return
        async with self._lock:
            if self._connection is not None:
                await self._connection.close()
                self._connection = None
                logger.info("SQLite store closed")

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        conn = self._require("get")
        async with conn.execute(
            "SELECT body FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        ) as cursor:
            row = await cursor.fetchone()
        return json.loads(row["body"]) if row is not None else None

    async def list(
        self,
        collection: str,
        predicate: Optional[Predicate] = None,
    ) -> List[Document]:
        conn = self._require("list")
        async with conn.execute(
            "SELECT body FROM documents WHERE collection = ? ORDER BY rowid",
            (collection,),
        ) as cursor:
            rows = await cursor.fetchall()
        docs = [json.loads(row["body"]) for row in rows]
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
        conn = self._require("put")
        async with self._lock:
            body = dict(document)
            if merge:
                existing = await self.get(collection, doc_id)
                if existing is not None:
                    existing.update(body)
                    body = existing
            try:
                encoded = json.dumps(body, sort_keys=True)
            except (TypeError, ValueError) as exc:
                raise StoreFault(self.name, "put", f"document is not JSON-serializable: {exc}") from exc
            await conn.execute(_UPSERT, (collection, doc_id, encoded))
            await conn.commit()

    async def delete(self, collection: str, doc_id: str) -> bool:
        conn = self._require("delete")
        async with self._lock:
            cursor = await conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            await conn.commit()
            return cursor.rowcount > 0

    def _require(self, operation: str) -> Any:
        if self._connection is None:
            raise StoreFault(self.name, operation, "store is not initialized")
        return self._connection
