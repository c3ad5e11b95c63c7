"""
PoolPal Store - Document persistence contract.

Every backend (memory, SQLite, cached wrapper) implements this
interface. Documents are JSON-compatible dicts grouped by collection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

Document = Dict[str, Any]
Predicate = Callable[[Document], bool]


class DocumentStore(ABC):
    """
    Abstract document store.

    Implementations must hand out copies: mutating a returned document
    never changes stored state.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier used in logs and faults."""

    async def initialize(self) -> None:
        """Open connections / create schema. Default: no-op."""

    async def shutdown(self) -> None:
        """Release resources. Default: no-op."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Fetch one document, or None if absent."""

    @abstractmethod
    async def list(
        self,
        collection: str,
        predicate: Optional[Predicate] = None,
    ) -> List[Document]:
        """Return all documents of a collection matching ``predicate``."""

    @abstractmethod
    async def put(
        self,
        collection: str,
        doc_id: str,
        document: Document,
        merge: bool = False,
    ) -> None:
        """
        Write a document.

        With ``merge=True`` the fields are shallow-merged into the
        existing document (created if absent).
        """

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns False if it did not exist."""

    async def __aenter__(self) -> "DocumentStore":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()
