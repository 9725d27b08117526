"""Document store boundary.

Services talk to persistent state only through ``DocumentStore`` and the
``Transaction`` handed to ``run_transaction`` callbacks. Paths are
slash-separated: collections have an odd number of segments
(``requests/req_1/offers``), documents an even number
(``requests/req_1/offers/<id>``).
"""
import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from app.core.errors import ValidationError

logger = logging.getLogger("document_store")

T = TypeVar("T")


def join_path(*parts: str) -> str:
    segments = []
    for part in parts:
        segments.extend(s for s in str(part).split("/") if s)
    return "/".join(segments)


def split_document_path(path: str) -> Tuple[str, str]:
    """Return ``(collection_path, document_id)`` for a document path."""
    segments = [s for s in path.split("/") if s]
    if not segments or len(segments) % 2 != 0:
        raise ValidationError("INVALID_PATH", f"not a document path: {path!r}")
    return "/".join(segments[:-1]), segments[-1]


def parent_document(collection_path: str) -> str:
    segments = [s for s in collection_path.split("/") if s]
    if len(segments) % 2 != 1:
        raise ValidationError("INVALID_PATH", f"not a collection path: {collection_path!r}")
    return "/".join(segments[:-1])


def collection_kind(collection_path: str) -> str:
    """``requests/req_1/offers`` -> ``requests.offers``."""
    segments = [s for s in collection_path.split("/") if s]
    return ".".join(segments[0::2])


@dataclass
class Document:
    id: str
    path: str
    data: Dict[str, Any]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass(frozen=True)
class Query:
    collection: str
    filters: Tuple[Tuple[str, Any], ...] = ()
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None

    def where(self, field_name: str, value: Any) -> "Query":
        return replace(self, filters=self.filters + ((field_name, value),))

    def order(self, field_name: str, descending: bool = False) -> "Query":
        return replace(self, order_by=field_name, descending=descending)

    def take(self, limit: int) -> "Query":
        return replace(self, limit=limit)

    def matches(self, data: Dict[str, Any]) -> bool:
        return all(data.get(name) == value for name, value in self.filters)

    def sort_key(self, doc: Document):
        if self.order_by is None:
            return (0, "", doc.id)
        value = doc.data.get(self.order_by)
        # missing values sort first, like the managed store
        return (0 if value is None else 1, value if value is not None else "", doc.id)

    def apply(self, documents: List[Document]) -> List[Document]:
        selected = [d for d in documents if self.matches(d.data)]
        selected.sort(key=self.sort_key, reverse=self.descending)
        if self.limit is not None:
            selected = selected[: self.limit]
        return selected


@dataclass
class Snapshot:
    documents: List[Document]
    read_at: Any = None
    size: int = field(init=False)

    def __post_init__(self):
        self.size = len(self.documents)

    @property
    def empty(self) -> bool:
        return not self.documents


def copy_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return copy.deepcopy(dict(fields))


class Transaction(ABC):
    """Read-then-write unit of work.

    Issue every read before the first write: reads observe committed state
    only, not the writes buffered in the same transaction.
    """

    @abstractmethod
    async def get(self, path: str) -> Optional[Document]:
        ...

    @abstractmethod
    async def query(self, query: Query) -> List[Document]:
        ...

    @abstractmethod
    async def create(self, path: str, fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def set(self, path: str, fields: Dict[str, Any], merge: bool = False) -> None:
        ...

    @abstractmethod
    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def delete(self, path: str) -> None:
        ...


class DocumentStore(ABC):

    @abstractmethod
    async def get(self, path: str) -> Optional[Document]:
        ...

    @abstractmethod
    async def set(self, path: str, fields: Dict[str, Any], merge: bool = False) -> None:
        ...

    @abstractmethod
    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        """Merge ``fields`` into an existing document; NotFoundError if absent."""

    @abstractmethod
    async def create(self, path: str, fields: Dict[str, Any]) -> None:
        """Write a new document; DocumentExistsError if the path is taken."""

    @abstractmethod
    async def add(self, collection: str, fields: Dict[str, Any]) -> str:
        """Create a document under a generated time-ordered id and return it."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        ...

    @abstractmethod
    async def query(self, query: Query) -> List[Document]:
        ...

    @abstractmethod
    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        max_attempts: Optional[int] = None,
    ) -> T:
        """Run ``fn`` atomically.

        Write conflicts with concurrent transactions re-run ``fn`` from
        scratch, at most ``max_attempts`` times, then raise
        TransactionConflictError. Any other exception raised by ``fn`` aborts
        the transaction and propagates unchanged.
        """

    @abstractmethod
    def subscribe(self, query: Query, name: Optional[str] = None):
        """Return a started ``Subscription`` yielding full snapshots of ``query``."""

    async def close(self) -> None:
        return None
