"""Document store layer for the Blood Bank service."""

from bloodbank.db.base import DocumentStore
from bloodbank.db.memory import MemoryDocumentStore
from bloodbank.db.postgres import LakebaseDocumentStore

_store: DocumentStore | None = None


def get_store() -> DocumentStore:
    """Get the global document store for the configured backend."""
    global _store
    if _store is None:
        from bloodbank.config import get_settings

        if get_settings().app.backend == "memory":
            _store = MemoryDocumentStore()
        else:
            _store = LakebaseDocumentStore()
    return _store


def reset_store() -> None:
    """Drop the global store so the next call rebuilds it."""
    global _store
    _store = None


__all__ = [
    "DocumentStore",
    "LakebaseDocumentStore",
    "MemoryDocumentStore",
    "get_store",
    "reset_store",
]
