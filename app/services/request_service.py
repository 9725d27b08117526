"""Request lifecycle: creation, conversation, claiming and completion.

Status moves forward only: NEW/OPEN -> CLAIMED -> BOUGHT/COMPLETED. Every
status change is decided inside a store transaction that re-reads the
request, so concurrent sellers and buyers cannot both win a transition.
"""
import logging
from typing import List, Optional

from app.core.config import settings
from app.core.errors import DocumentExistsError, NotFoundError, ValidationError
from app.core.store import DocumentStore, Transaction, join_path
from app.core.subscription import Subscription
from app.models.request import (
    INITIAL_STATUSES,
    ClaimedRequest,
    MarketRequest,
    Message,
    RequestStatus,
    SenderType,
    ensure_transition,
)
from app.repositories.request_repository import RequestRepository
from app.utils.clock import utcnow
from app.utils.ids import time_ordered_id
from app.utils.text import normalize_category, safe

logger = logging.getLogger("request_service")


def _require(value: Optional[str], field: str) -> str:
    cleaned = safe(value)
    if not cleaned:
        raise ValidationError(message=f"{field} is required")
    return cleaned


class RequestService:
    def __init__(self, store: DocumentStore):
        self.store = store
        self.requests = RequestRepository(store)

    async def get_request(self, request_id: str) -> MarketRequest:
        request = await self.requests.get(_require(request_id, "requestId"))
        if request is None:
            raise NotFoundError("REQUEST_NOT_FOUND", f"request {request_id} not found")
        return request

    async def create_request(self, request_id: str, text: str, buyer_id: str = "") -> MarketRequest:
        rid = _require(request_id, "requestId")
        body = _require(text, "text")
        now = utcnow()
        request = MarketRequest(
            request_id=rid,
            buyer_id=safe(buyer_id),
            text=body,
            category=normalize_category(body),
            status=RequestStatus.NEW,
            created_at=now,
            updated_at=now,
        )

        async def _create(tx: Transaction) -> MarketRequest:
            await self._ensure_reusable(tx, rid)
            await tx.set(self.requests.path(rid), request.to_fields())
            return request

        created = await self.store.run_transaction(_create)
        logger.info("Request %s created (category=%r)", rid, created.category)
        return created

    async def create_conversation(
        self,
        request_id: str,
        buyer_id: str,
        first_text: str,
        buyer_request_no: int = 0,
    ) -> MarketRequest:
        """Open a chat style request and post the buyer's first message."""
        rid = _require(request_id, "requestId")
        body = _require(first_text, "text")
        now = utcnow()
        request = MarketRequest(
            request_id=rid,
            buyer_id=safe(buyer_id),
            text=body,
            buyer_text=body,
            latest_buyer_text=body,
            category=normalize_category(body),
            status=RequestStatus.OPEN,
            buyer_request_no=max(buyer_request_no or 0, 0),
            created_at=now,
            updated_at=now,
        )

        async def _open(tx: Transaction) -> None:
            await self._ensure_reusable(tx, rid)
            await tx.set(self.requests.path(rid), request.to_fields(), merge=True)

        await self.store.run_transaction(_open)
        message = await self.send_buyer_message(rid, buyer_id, body)
        request.latest_buyer_message_id = message.id
        logger.info("Conversation %s opened by buyer %r", rid, request.buyer_id)
        return request

    async def _ensure_reusable(self, tx: Transaction, request_id: str) -> None:
        existing = await tx.get(self.requests.path(request_id))
        if existing is not None and existing.get("status") not in {s.value for s in INITIAL_STATUSES}:
            raise DocumentExistsError(message=f"request {request_id} is already {existing.get('status')}")

    async def send_buyer_message(self, request_id: str, buyer_id: str, text: str) -> Message:
        rid = _require(request_id, "requestId")
        body = _require(text, "text")
        message = Message(
            id=time_ordered_id(),
            request_id=rid,
            sender_type=SenderType.BUYER,
            sender_id=safe(buyer_id),
            text=body,
            created_at=utcnow(),
        )

        async def _append(tx: Transaction) -> Message:
            if await tx.get(self.requests.path(rid)) is None:
                raise NotFoundError("REQUEST_NOT_FOUND", f"request {rid} not found")
            await tx.create(join_path(self.requests.messages_collection(rid), message.id), message.to_fields())
            # the newest buyer message is the question sellers must answer
            await tx.set(
                self.requests.path(rid),
                {
                    "updatedAt": message.created_at,
                    "buyerText": body,
                    "latestBuyerText": body,
                    "latestBuyerMessageId": message.id,
                    "category": normalize_category(body),
                },
                merge=True,
            )
            return message

        return await self.store.run_transaction(_append)

    async def send_seller_message(self, request_id: str, seller_id: str, text: str) -> Message:
        rid = _require(request_id, "requestId")
        body = _require(text, "text")
        await self.get_request(rid)
        message = Message(
            request_id=rid,
            sender_type=SenderType.SELLER,
            sender_id=safe(seller_id),
            text=body,
            created_at=utcnow(),
        )
        message = await self.requests.add_message(message)
        await self.requests.patch(rid, {"updatedAt": message.created_at})
        return message

    async def list_messages(self, request_id: str) -> List[Message]:
        return await self.requests.list_messages(_require(request_id, "requestId"))

    async def current_question(self, request_id: str) -> Optional[Message]:
        return await self.requests.latest_message(_require(request_id, "requestId"), SenderType.BUYER)

    async def claim_oldest_open(self, batch_size: Optional[int] = None) -> Optional[ClaimedRequest]:
        """Claim one NEW request for a seller, or return None when there is none.

        The query reads the oldest ``batch_size`` NEW requests and claims the
        newest of that page, not the global oldest.
        """
        limit = batch_size or settings.claim_batch_size

        async def _claim(tx: Transaction) -> Optional[ClaimedRequest]:
            docs = await tx.query(self.requests.new_requests_query(limit))
            if not docs:
                return None
            doc = docs[-1]
            ensure_transition(doc.get("status"), RequestStatus.CLAIMED)
            now = utcnow()
            await tx.update(doc.path, {"status": RequestStatus.CLAIMED.value, "claimedAt": now, "updatedAt": now})
            return ClaimedRequest(request_id=doc.get("requestId") or doc.id, text=doc.get("text") or "")

        claimed = await self.store.run_transaction(_claim)
        if claimed is not None:
            logger.info("Request %s claimed", claimed.request_id)
        return claimed

    async def mark_completed(
        self,
        request_id: str,
        offer_id: str,
        buyer_name: str = "",
        address: str = "",
    ) -> MarketRequest:
        rid = _require(request_id, "requestId")
        oid = _require(offer_id, "offerId")

        async def _complete(tx: Transaction) -> MarketRequest:
            doc = await tx.get(self.requests.path(rid))
            if doc is None:
                raise NotFoundError("REQUEST_NOT_FOUND", f"request {rid} not found")
            current = MarketRequest.from_document(doc)
            repeat = current.status == RequestStatus.COMPLETED and current.selected_offer_id == oid
            if not repeat:
                ensure_transition(current.status, RequestStatus.COMPLETED)
            now = utcnow()
            patch = {
                "status": RequestStatus.COMPLETED.value,
                "updatedAt": now,
                "completedAt": now,
                "selectedOfferId": oid,
                "buyerName": safe(buyer_name),
                "address": safe(address),
            }
            await tx.set(doc.path, patch, merge=True)
            return MarketRequest.model_validate({**doc.data, **patch, "id": doc.id})

        return await self.store.run_transaction(_complete)

    async def delete_request(self, request_id: str) -> int:
        """Remove a request with its messages, offers and rows. Orders stay."""
        request = await self.get_request(request_id)
        removed = await self.requests.delete_cascade(request.request_id)
        logger.info("Request %s deleted with %d child documents", request.request_id, removed)
        return removed

    # -- live views -------------------------------------------------------

    def listen_open_requests(self) -> Subscription:
        return self.store.subscribe(self.requests.open_requests_query(), name="open-requests")

    def listen_new_requests(self) -> Subscription:
        return self.store.subscribe(self.requests.new_requests_query(), name="new-requests")

    def listen_buyer_requests(self, buyer_id: str) -> Subscription:
        return self.store.subscribe(
            self.requests.buyer_requests_query(_require(buyer_id, "buyerId")), name=f"buyer:{buyer_id}"
        )

    def listen_messages(self, request_id: str) -> Subscription:
        rid = _require(request_id, "requestId")
        return self.store.subscribe(self.requests.messages_query(rid), name=f"messages:{rid}")
