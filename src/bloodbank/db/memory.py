"""In-process document store for local development and tests."""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from typing import Any, AsyncIterator

import structlog

from bloodbank.core.errors import WriteError
from bloodbank.db.base import DocumentStore
from bloodbank.db.schemas import InventoryDocument, utc_now

logger = structlog.get_logger()


class MemoryDocumentStore(DocumentStore):
    """Document store held in a dict, with queue-based change notification."""

    def __init__(self):
        self._collections: dict[str, dict[str, InventoryDocument]] = defaultdict(dict)
        self._watchers: dict[str, set[asyncio.Queue]] = defaultdict(set)

    async def list_documents(self, collection_path: str) -> list[InventoryDocument]:
        docs = self._collections.get(collection_path, {})
        return [
            InventoryDocument(
                collection_path=doc.collection_path,
                doc_id=doc.doc_id,
                data=copy.deepcopy(doc.data),
                updated_ts=doc.updated_ts,
            )
            for _, doc in sorted(docs.items())
        ]

    async def set_document(
        self, collection_path: str, doc_id: str, data: dict[str, Any]
    ) -> None:
        self._collections[collection_path][doc_id] = InventoryDocument(
            collection_path=collection_path,
            doc_id=doc_id,
            data=copy.deepcopy(data),
            updated_ts=utc_now(),
        )
        logger.debug("document_set", collection=collection_path, doc_id=doc_id)
        self._notify(collection_path)

    async def update_document(
        self, collection_path: str, doc_id: str, fields: dict[str, Any]
    ) -> None:
        doc = self._collections.get(collection_path, {}).get(doc_id)
        if doc is None:
            raise WriteError(f"Document not found: {collection_path}/{doc_id}")

        doc.data = {**doc.data, **copy.deepcopy(fields)}
        doc.updated_ts = utc_now()
        logger.debug("document_updated", collection=collection_path, doc_id=doc_id)
        self._notify(collection_path)

    async def clear_collection(self, collection_path: str) -> int:
        removed = len(self._collections.pop(collection_path, {}))
        if removed:
            self._notify(collection_path)
        return removed

    async def watch(self, collection_path: str) -> AsyncIterator[list[InventoryDocument]]:
        queue: asyncio.Queue = asyncio.Queue()
        self._watchers[collection_path].add(queue)
        try:
            yield await self.list_documents(collection_path)
            while True:
                await queue.get()
                # Coalesce bursts of writes into one listing
                while not queue.empty():
                    queue.get_nowait()
                yield await self.list_documents(collection_path)
        finally:
            self._watchers[collection_path].discard(queue)

    def _notify(self, collection_path: str) -> None:
        for queue in self._watchers.get(collection_path, ()):
            queue.put_nowait(collection_path)

    @property
    def watcher_count(self) -> int:
        return sum(len(queues) for queues in self._watchers.values())
