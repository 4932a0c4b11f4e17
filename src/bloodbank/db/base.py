"""Document store interface shared by the Lakebase and memory backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from bloodbank.db.schemas import InventoryDocument


class DocumentStore(ABC):
    """Path-addressed collections of JSON documents with live queries."""

    @abstractmethod
    async def list_documents(self, collection_path: str) -> list[InventoryDocument]:
        """Return every document in the collection, ordered by id."""

    @abstractmethod
    async def set_document(
        self, collection_path: str, doc_id: str, data: dict[str, Any]
    ) -> None:
        """Create or replace a single document."""

    @abstractmethod
    async def update_document(
        self, collection_path: str, doc_id: str, fields: dict[str, Any]
    ) -> None:
        """Merge top-level fields into an existing document.

        Raises:
            WriteError: If the document does not exist or the write fails
        """

    @abstractmethod
    async def clear_collection(self, collection_path: str) -> int:
        """Delete every document in the collection, returning the count."""

    @abstractmethod
    def watch(self, collection_path: str) -> AsyncIterator[list[InventoryDocument]]:
        """Yield the current listing, then a fresh listing after every change.

        Raises:
            SyncError: If the change channel cannot be established
        """

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        pass
