import logging
from typing import Optional
from .config import settings
from .store import DocumentStore

logger = logging.getLogger("database")

_store: Optional[DocumentStore] = None


def create_store(backend: Optional[str] = None) -> DocumentStore:
    backend = (backend or settings.store_backend).lower()
    if backend == "memory":
        from .memory_store import MemoryDocumentStore
        return MemoryDocumentStore()
    if backend == "mongo":
        from .mongo import MongoDocumentStore
        return MongoDocumentStore()
    raise ValueError(f"Unknown STORE_BACKEND: {backend}")


# FastAPI dependency, one store per process
def get_store() -> DocumentStore:
    global _store
    if _store is None:
        _store = create_store()
        logger.info("Document store ready (%s)", settings.store_backend)
    return _store


async def close_store() -> None:
    global _store
    if _store is not None:
        await _store.close()
        _store = None
