import pytest
from pymongo.errors import PyMongoError

from app.core.errors import AlreadyBoughtError, TransactionConflictError, TransientStoreError
from app.core.mongo import MongoDocumentStore


def labelled(message, label):
    return PyMongoError(message, error_labels=[label])


class FakeCollection:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    async def find_one(self, selector, session=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {"_id": selector["_id"], "_parent": "", "status": "NEW"}


class FakeSession:
    """Follows the driver's with_transaction contract: the callback is re-run
    on TransientTransactionError, only the commit is retried on
    UnknownTransactionCommitResult."""

    def __init__(self, commit_errors=()):
        self.commit_errors = list(commit_errors)
        self.commits = 0
        self.options = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def with_transaction(self, callback, **options):
        self.options = options
        while True:
            try:
                result = await callback(self)
            except PyMongoError as exc:
                if exc.has_error_label("TransientTransactionError"):
                    continue
                raise
            while True:
                self.commits += 1
                if not self.commit_errors:
                    return result
                error = self.commit_errors.pop(0)
                if error.has_error_label("UnknownTransactionCommitResult"):
                    continue
                raise error


class FakeClient:
    def __init__(self, session, collection):
        self.session = session
        self.collection = collection

    def __getitem__(self, name):
        return {"requests": self.collection}

    async def start_session(self):
        return self.session

    def close(self):
        pass


def make_store(session=None, collection=None, max_attempts=3):
    client = FakeClient(session or FakeSession(), collection or FakeCollection())
    return MongoDocumentStore(client=client, db_name="test", timeout=0, max_attempts=max_attempts)


async def test_unknown_commit_result_retries_commit_not_body():
    session = FakeSession(commit_errors=[labelled("commit lost", "UnknownTransactionCommitResult")])
    store = make_store(session)
    runs = []

    async def claim(tx):
        doc = await tx.get("requests/r1")
        runs.append(doc.id)
        return doc.id

    assert await store.run_transaction(claim) == "r1"
    assert runs == ["r1"]
    assert session.commits == 2
    assert session.options["read_concern"].level == "snapshot"


async def test_transient_conflicts_rerun_body_within_budget():
    collection = FakeCollection(error=labelled("write conflict", "TransientTransactionError"))
    store = make_store(collection=collection, max_attempts=3)

    async def claim(tx):
        return await tx.get("requests/r1")

    with pytest.raises(TransactionConflictError):
        await store.run_transaction(claim)
    assert collection.calls == 3


async def test_domain_errors_pass_through_unchanged():
    session = FakeSession()
    store = make_store(session)

    async def buy(tx):
        await tx.get("requests/r1")
        raise AlreadyBoughtError()

    with pytest.raises(AlreadyBoughtError):
        await store.run_transaction(buy)
    assert session.commits == 0


async def test_failed_commit_maps_to_store_error():
    store = make_store(FakeSession(commit_errors=[PyMongoError("primary stepped down")]))

    async def noop(tx):
        return None

    with pytest.raises(TransientStoreError) as exc_info:
        await store.run_transaction(noop)
    assert exc_info.value.code == "STORE_UNAVAILABLE"


async def test_transient_label_outside_transaction_is_store_error():
    collection = FakeCollection(error=labelled("write conflict", "TransientTransactionError"))
    store = make_store(collection=collection)

    with pytest.raises(TransientStoreError):
        await store.get("requests/r1")
