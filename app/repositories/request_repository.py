from typing import Any, Dict, List, Optional

from app.core.store import DocumentStore, Query, join_path
from app.models.request import MarketRequest, Message, RequestStatus, SenderType

REQUESTS = "requests"
CHILD_COLLECTIONS = ("messages", "offers", "rows", "offerSlots")


class RequestRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    def path(self, request_id: str) -> str:
        return join_path(REQUESTS, request_id)

    def messages_collection(self, request_id: str) -> str:
        return join_path(REQUESTS, request_id, "messages")

    async def get(self, request_id: str) -> Optional[MarketRequest]:
        doc = await self.store.get(self.path(request_id))
        return MarketRequest.from_document(doc) if doc else None

    async def save(self, request: MarketRequest, merge: bool = False) -> None:
        await self.store.set(self.path(request.request_id), request.to_fields(), merge=merge)

    async def patch(self, request_id: str, fields: Dict[str, Any]) -> None:
        await self.store.set(self.path(request_id), fields, merge=True)

    async def add_message(self, message: Message) -> Message:
        message.id = await self.store.add(self.messages_collection(message.request_id), message.to_fields())
        return message

    async def list_messages(self, request_id: str) -> List[Message]:
        docs = await self.store.query(self.messages_query(request_id))
        return [Message.from_document(d) for d in docs]

    async def latest_message(self, request_id: str, sender_type: SenderType) -> Optional[Message]:
        query = (
            Query(self.messages_collection(request_id))
            .where("senderType", sender_type.value)
            .order("createdAt", descending=True)
            .take(1)
        )
        docs = await self.store.query(query)
        return Message.from_document(docs[0]) if docs else None

    async def delete_cascade(self, request_id: str) -> int:
        removed = 0
        for child in CHILD_COLLECTIONS:
            for doc in await self.store.query(Query(join_path(REQUESTS, request_id, child))):
                await self.store.delete(doc.path)
                removed += 1
        await self.store.delete(self.path(request_id))
        return removed

    # -- live views -------------------------------------------------------

    def new_requests_query(self, limit: Optional[int] = None) -> Query:
        query = Query(REQUESTS).where("status", RequestStatus.NEW.value).order("createdAt")
        return query.take(limit) if limit else query

    def open_requests_query(self) -> Query:
        return Query(REQUESTS).where("status", RequestStatus.OPEN.value).order("updatedAt", descending=True)

    def buyer_requests_query(self, buyer_id: str) -> Query:
        return Query(REQUESTS).where("buyerId", buyer_id).order("updatedAt", descending=True)

    def messages_query(self, request_id: str) -> Query:
        return Query(self.messages_collection(request_id)).order("createdAt")
