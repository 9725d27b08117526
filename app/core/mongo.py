"""MongoDB implementation of the document store, on top of motor.

Each collection kind gets one Mongo collection (``requests``,
``requests.offers``, ``menus`` ...). A document is stored with ``_id`` set to
its id and ``_parent`` set to the path of its parent document, so the
sub-collections of every request share one Mongo collection. Transactions and
change streams need a replica set.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from app.core.config import settings
from app.core.errors import (
    DocumentExistsError,
    MarketplaceError,
    NotFoundError,
    StoreTimeoutError,
    TransactionConflictError,
    TransientStoreError,
)
from app.core.store import (
    Document,
    DocumentStore,
    Query,
    Transaction,
    collection_kind,
    copy_fields,
    join_path,
    parent_document,
    split_document_path,
)
from app.core.subscription import Subscription
from app.utils.ids import time_ordered_id

logger = logging.getLogger("mongo_store")

T = TypeVar("T")

_INTERNAL_FIELDS = ("_id", "_parent")


def _to_document(collection_path: str, raw: Dict[str, Any]) -> Document:
    doc_id = str(raw["_id"])
    data = {k: v for k, v in raw.items() if k not in _INTERNAL_FIELDS}
    return Document(id=doc_id, path=join_path(collection_path, doc_id), data=data)


class MongoTransaction(Transaction):
    def __init__(self, store: "MongoDocumentStore", session):
        self._store = store
        self._session = session

    async def get(self, path: str) -> Optional[Document]:
        return await self._store._find_one(path, session=self._session)

    async def query(self, query: Query) -> List[Document]:
        return await self._store._find(query, session=self._session)

    async def create(self, path: str, fields: Dict[str, Any]) -> None:
        await self._store._insert(path, fields, session=self._session)

    async def set(self, path: str, fields: Dict[str, Any], merge: bool = False) -> None:
        await self._store._set(path, fields, merge, session=self._session)

    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        await self._store._update(path, fields, session=self._session)

    async def delete(self, path: str) -> None:
        await self._store._delete(path, session=self._session)


class MongoDocumentStore(DocumentStore):
    def __init__(
        self,
        client: Optional[AsyncIOMotorClient] = None,
        db_name: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        self._client = client or AsyncIOMotorClient(settings.mongo_url, tz_aware=True)
        self._db = self._client[db_name or settings.mongo_db]
        self.timeout = timeout if timeout is not None else settings.store_timeout_seconds
        self.max_attempts = max_attempts or settings.transaction_max_attempts

    # -- helpers -----------------------------------------------------------

    def _collection(self, collection_path: str):
        return self._db[collection_kind(collection_path)]

    def _locate(self, path: str):
        collection_path, doc_id = split_document_path(path)
        return self._collection(collection_path), {"_id": doc_id}, collection_path

    async def _guard(self, awaitable, session=None):
        try:
            if self.timeout:
                return await asyncio.wait_for(awaitable, self.timeout)
            return await awaitable
        except asyncio.TimeoutError as exc:
            raise StoreTimeoutError(message="document store did not answer in time") from exc
        except DuplicateKeyError as exc:
            raise DocumentExistsError(message="document already exists") from exc
        except PyMongoError as exc:
            if session is not None and exc.has_error_label("TransientTransactionError"):
                # with_transaction retries the whole body on this label
                raise
            logger.error("Document store failure: %s", exc)
            raise TransientStoreError(message="document store unavailable") from exc

    async def _find_one(self, path: str, session=None) -> Optional[Document]:
        collection, selector, collection_path = self._locate(path)
        raw = await self._guard(collection.find_one(selector, session=session), session)
        return _to_document(collection_path, raw) if raw else None

    async def _find(self, query: Query, session=None) -> List[Document]:
        selector = {"_parent": parent_document(query.collection)}
        for name, value in query.filters:
            selector[name] = value
        cursor = self._collection(query.collection).find(selector, session=session)
        direction = DESCENDING if query.descending else ASCENDING
        if query.order_by:
            cursor = cursor.sort([(query.order_by, direction), ("_id", direction)])
        else:
            cursor = cursor.sort("_id", ASCENDING)
        if query.limit is not None:
            cursor = cursor.limit(query.limit)
        raws = await self._guard(cursor.to_list(length=query.limit), session)
        return [_to_document(query.collection, raw) for raw in raws]

    async def _insert(self, path: str, fields: Dict[str, Any], session=None) -> None:
        collection, selector, collection_path = self._locate(path)
        body = copy_fields(fields)
        body.update(selector)
        body["_parent"] = parent_document(collection_path)
        await self._guard(collection.insert_one(body, session=session), session)

    async def _set(self, path: str, fields: Dict[str, Any], merge: bool, session=None) -> None:
        collection, selector, collection_path = self._locate(path)
        body = copy_fields(fields)
        body["_parent"] = parent_document(collection_path)
        if merge:
            await self._guard(collection.update_one(selector, {"$set": body}, upsert=True, session=session), session)
        else:
            await self._guard(collection.replace_one(selector, body, upsert=True, session=session), session)

    async def _update(self, path: str, fields: Dict[str, Any], session=None) -> None:
        collection, selector, _ = self._locate(path)
        result = await self._guard(
            collection.update_one(selector, {"$set": copy_fields(fields)}, session=session), session
        )
        if result.matched_count == 0:
            raise NotFoundError("DOCUMENT_NOT_FOUND", f"no document at {path}")

    async def _delete(self, path: str, session=None) -> None:
        collection, selector, _ = self._locate(path)
        await self._guard(collection.delete_one(selector, session=session), session)

    # -- DocumentStore -----------------------------------------------------

    async def get(self, path: str) -> Optional[Document]:
        return await self._find_one(path)

    async def set(self, path: str, fields: Dict[str, Any], merge: bool = False) -> None:
        await self._set(path, fields, merge)

    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        await self._update(path, fields)

    async def create(self, path: str, fields: Dict[str, Any]) -> None:
        await self._insert(path, fields)

    async def add(self, collection: str, fields: Dict[str, Any]) -> str:
        doc_id = time_ordered_id()
        await self._insert(join_path(collection, doc_id), fields)
        return doc_id

    async def delete(self, path: str) -> None:
        await self._delete(path)

    async def query(self, query: Query) -> List[Document]:
        return await self._find(query)

    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        max_attempts: Optional[int] = None,
    ) -> T:
        """Run ``fn`` through the driver's ``with_transaction`` protocol.

        The driver re-runs the body on TransientTransactionError and retries
        only the commit on UnknownTransactionCommitResult, so a commit that
        may already have landed never runs ``fn`` a second time.
        """
        attempts = max_attempts or self.max_attempts
        runs = 0

        async def _body(session) -> T:
            nonlocal runs
            runs += 1
            if runs > attempts:
                raise TransactionConflictError(message=f"transaction aborted after {attempts} attempts")
            if runs > 1:
                logger.debug("Transaction conflict, retrying (attempt %d/%d)", runs, attempts)
            return await fn(MongoTransaction(self, session))

        try:
            async with await self._client.start_session() as session:
                return await session.with_transaction(
                    _body,
                    read_concern=ReadConcern("snapshot"),
                    write_concern=WriteConcern("majority"),
                )
        except MarketplaceError:
            raise
        except PyMongoError as exc:
            logger.error("Transaction failed: %s", exc)
            raise TransientStoreError(message="transaction failed") from exc

    def subscribe(self, query: Query, name: Optional[str] = None) -> Subscription:
        subscription = Subscription(query, self.query, name=name)
        subscription.start()
        subscription.attach(asyncio.ensure_future(self._watch(query, subscription)))
        return subscription

    async def _watch(self, query: Query, subscription: Subscription) -> None:
        pipeline = [{"$match": {"fullDocument._parent": parent_document(query.collection)}}]
        if query.collection.count("/") == 0:
            # top-level collection: deletes carry no fullDocument, watch everything
            pipeline = []
        try:
            async with self._collection(query.collection).watch(
                pipeline, full_document="updateLookup"
            ) as stream:
                async for _change in stream:
                    subscription.notify()
        except asyncio.CancelledError:
            raise
        except PyMongoError as exc:
            subscription.fail(TransientStoreError(message=f"change stream failed: {exc}"))

    async def close(self) -> None:
        self._client.close()
