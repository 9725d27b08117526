"""In-process document store.

Implements the same contract as the managed store: optimistic transactions
validated at commit time, ordered queries and live subscriptions. Used by the
test suite and by ``STORE_BACKEND=memory`` for local runs.
"""
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from app.core.config import settings
from app.core.errors import DocumentExistsError, NotFoundError, TransactionConflictError
from app.core.store import (
    Document,
    DocumentStore,
    Query,
    Transaction,
    copy_fields,
    join_path,
    split_document_path,
)
from app.core.subscription import Subscription
from app.utils.ids import time_ordered_id

logger = logging.getLogger("memory_store")

T = TypeVar("T")


class _Conflict(Exception):
    pass


class MemoryTransaction(Transaction):
    def __init__(self, store: "MemoryDocumentStore"):
        self._store = store
        self._read_docs: Dict[str, int] = {}
        self._read_collections: Dict[str, int] = {}
        self._writes: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []

    async def get(self, path: str) -> Optional[Document]:
        await asyncio.sleep(0)
        self._read_docs.setdefault(path, self._store._version(path))
        return self._store._read(path)

    async def query(self, query: Query) -> List[Document]:
        await asyncio.sleep(0)
        self._read_collections.setdefault(query.collection, self._store._collection_version(query.collection))
        documents = self._store._run_query(query)
        for doc in documents:
            self._read_docs.setdefault(doc.path, self._store._version(doc.path))
        return documents

    async def create(self, path: str, fields: Dict[str, Any]) -> None:
        self._writes.append(("create", path, copy_fields(fields)))

    async def set(self, path: str, fields: Dict[str, Any], merge: bool = False) -> None:
        self._writes.append(("merge" if merge else "set", path, copy_fields(fields)))

    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        self._writes.append(("update", path, copy_fields(fields)))

    async def delete(self, path: str) -> None:
        self._writes.append(("delete", path, None))

    def commit(self) -> None:
        store = self._store
        for path, version in self._read_docs.items():
            if store._version(path) != version:
                raise _Conflict(path)
        for collection, version in self._read_collections.items():
            if store._collection_version(collection) != version:
                raise _Conflict(collection)
        # validate every write before applying any of them
        present = {path: path in store._docs for _, path, _ in self._writes}
        for op, path, _ in self._writes:
            if op == "create" and present[path]:
                raise DocumentExistsError(message=f"document already exists: {path}")
            if op == "update" and not present[path]:
                raise NotFoundError("DOCUMENT_NOT_FOUND", f"no document at {path}")
            present[path] = op != "delete"
        for op, path, fields in self._writes:
            store._apply(op, path, fields)
        store._publish({split_document_path(path)[0] for _, path, _ in self._writes})


class MemoryDocumentStore(DocumentStore):
    def __init__(self, max_attempts: Optional[int] = None, retry_backoff: float = 0.001):
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._versions: Dict[str, int] = {}
        self._collection_versions: Dict[str, int] = {}
        self._subscriptions: List[Subscription] = []
        self.max_attempts = max_attempts or settings.transaction_max_attempts
        self.retry_backoff = retry_backoff

    # -- internals ---------------------------------------------------------

    def _version(self, path: str) -> int:
        return self._versions.get(path, 0)

    def _collection_version(self, collection: str) -> int:
        return self._collection_versions.get(collection, 0)

    def _read(self, path: str) -> Optional[Document]:
        data = self._docs.get(path)
        if data is None:
            return None
        _, doc_id = split_document_path(path)
        return Document(id=doc_id, path=path, data=copy_fields(data))

    def _run_query(self, query: Query) -> List[Document]:
        prefix = query.collection.strip("/") + "/"
        depth = prefix.count("/") + 1
        documents = [
            Document(id=path[len(prefix):], path=path, data=copy_fields(data))
            for path, data in self._docs.items()
            if path.startswith(prefix) and path.count("/") + 1 == depth
        ]
        return query.apply(documents)

    def _apply(self, op: str, path: str, fields: Optional[Dict[str, Any]]) -> None:
        if op == "delete":
            self._docs.pop(path, None)
        elif op in ("merge", "update"):
            merged = self._docs.get(path, {})
            merged.update(fields)
            self._docs[path] = merged
        else:
            self._docs[path] = fields
        self._versions[path] = self._version(path) + 1
        collection, _ = split_document_path(path)
        self._collection_versions[collection] = self._collection_version(collection) + 1

    def _publish(self, collections) -> None:
        self._subscriptions = [s for s in self._subscriptions if not s.closed]
        for subscription in self._subscriptions:
            if subscription.query.collection in collections:
                subscription.notify()

    def _write(self, op: str, path: str, fields: Optional[Dict[str, Any]]) -> None:
        split_document_path(path)
        exists = path in self._docs
        if op == "create" and exists:
            raise DocumentExistsError(message=f"document already exists: {path}")
        if op == "update" and not exists:
            raise NotFoundError("DOCUMENT_NOT_FOUND", f"no document at {path}")
        self._apply(op, path, copy_fields(fields) if fields is not None else None)
        self._publish({split_document_path(path)[0]})

    # -- DocumentStore -----------------------------------------------------

    async def get(self, path: str) -> Optional[Document]:
        return self._read(path)

    async def set(self, path: str, fields: Dict[str, Any], merge: bool = False) -> None:
        self._write("merge" if merge else "set", path, fields)

    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        self._write("update", path, fields)

    async def create(self, path: str, fields: Dict[str, Any]) -> None:
        self._write("create", path, fields)

    async def add(self, collection: str, fields: Dict[str, Any]) -> str:
        doc_id = time_ordered_id()
        self._write("create", join_path(collection, doc_id), fields)
        return doc_id

    async def delete(self, path: str) -> None:
        if path in self._docs:
            self._write("delete", path, None)

    async def query(self, query: Query) -> List[Document]:
        return self._run_query(query)

    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        max_attempts: Optional[int] = None,
    ) -> T:
        attempts = max_attempts or self.max_attempts
        for attempt in range(1, attempts + 1):
            tx = MemoryTransaction(self)
            result = await fn(tx)
            try:
                tx.commit()
                return result
            except _Conflict as conflict:
                logger.debug("Transaction conflict on %s (attempt %d/%d)", conflict, attempt, attempts)
                await asyncio.sleep(random.uniform(0, self.retry_backoff * attempt))
        raise TransactionConflictError(message=f"transaction aborted after {attempts} attempts")

    def subscribe(self, query: Query, name: Optional[str] = None) -> Subscription:
        subscription = Subscription(query, self.query, name=name)
        self._subscriptions.append(subscription)
        return subscription.start()

    async def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []
