from typing import List, Optional

from app.core.store import DocumentStore, Query, join_path
from app.models.offer import Offer, OfferSlotLedger, Row
from app.repositories.request_repository import REQUESTS


class OfferRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    def offers_collection(self, request_id: str) -> str:
        return join_path(REQUESTS, request_id, "offers")

    def offer_path(self, request_id: str, offer_id: str) -> str:
        return join_path(self.offers_collection(request_id), offer_id)

    def ledger_path(self, request_id: str, buyer_message_id: str) -> str:
        return join_path(REQUESTS, request_id, "offerSlots", buyer_message_id)

    def rows_collection(self, request_id: str) -> str:
        return join_path(REQUESTS, request_id, "rows")

    def row_path(self, request_id: str, row_index: int) -> str:
        return join_path(self.rows_collection(request_id), str(row_index))

    def offers_query(self, request_id: str, buyer_message_id: Optional[str] = None) -> Query:
        query = Query(self.offers_collection(request_id))
        if buyer_message_id:
            query = query.where("buyerMessageId", buyer_message_id)
        return query.order("createdAt")

    async def get_offer(self, request_id: str, offer_id: str) -> Optional[Offer]:
        doc = await self.store.get(self.offer_path(request_id, offer_id))
        return Offer.from_document(doc) if doc else None

    async def list_offers(self, request_id: str, buyer_message_id: Optional[str] = None) -> List[Offer]:
        docs = await self.store.query(self.offers_query(request_id, buyer_message_id))
        return [Offer.from_document(d) for d in docs]

    async def get_ledger(self, request_id: str, buyer_message_id: str) -> Optional[OfferSlotLedger]:
        doc = await self.store.get(self.ledger_path(request_id, buyer_message_id))
        return OfferSlotLedger.from_document(doc) if doc else None

    async def list_rows(self, request_id: str) -> List[Row]:
        docs = await self.store.query(Query(self.rows_collection(request_id)).order("rowIndex"))
        return [Row.from_document(d) for d in docs]
