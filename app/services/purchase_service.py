"""Atomic purchase of one row or offer.

A buy reads the request and the chosen row/offer, then writes the order, the
request's terminal status and the bought flag in one transaction. Either all
three land or none does; a concurrent buy that commits first turns the retry
of this one into ALREADY_BOUGHT.
"""
import logging
from typing import List, Optional

from app.core.config import settings
from app.core.errors import NotFoundError, ValidationError
from app.core.store import DocumentStore, Transaction
from app.models.offer import Offer, Row
from app.models.order import Order, OrderStatus
from app.models.request import MarketRequest, RequestStatus, ensure_transition
from app.repositories.offer_repository import OfferRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.request_repository import RequestRepository
from app.utils.clock import utcnow
from app.utils.ids import new_order_id
from app.utils.text import as_float, as_int, safe

logger = logging.getLogger("purchase_service")


class PurchaseService:
    def __init__(self, store: DocumentStore):
        self.store = store
        self.requests = RequestRepository(store)
        self.offers = OfferRepository(store)
        self.orders = OrderRepository(store)

    async def _load_request(self, tx: Transaction, request_id: str, target: RequestStatus) -> MarketRequest:
        doc = await tx.get(self.requests.path(request_id))
        if doc is None:
            raise NotFoundError("REQUEST_NOT_FOUND", f"request {request_id} not found")
        request = MarketRequest.from_document(doc)
        ensure_transition(request.status, target)
        return request

    async def buy_row(
        self,
        request_id: str,
        row_index: int,
        buyer_name: Optional[str] = None,
        buyer_address: Optional[str] = None,
    ) -> Order:
        rid = safe(request_id)
        if not rid:
            raise ValidationError(message="requestId required")
        if not isinstance(row_index, int) or not 0 <= row_index < settings.row_slots:
            raise ValidationError(message=f"rowIndex must be 0..{settings.row_slots - 1}")

        async def _buy(tx: Transaction) -> Order:
            await self._load_request(tx, rid, RequestStatus.BOUGHT)
            row_path = self.offers.row_path(rid, row_index)
            row_doc = await tx.get(row_path)
            if row_doc is None:
                raise NotFoundError("ROW_NOT_FOUND", f"row {row_index} of request {rid} not found")
            row = Row.from_document(row_doc)

            now = utcnow()
            order = Order(
                order_id=new_order_id(),
                request_id=rid,
                row_index=row_index,
                menu=row.content,
                vendor=row.vendor,
                price=row.price,
                score=row.score,
                seller_id=row.seller_id,
                buyer_name=safe(buyer_name),
                buyer_address=safe(buyer_address),
                status=OrderStatus.PAID,
                created_at=now,
            )
            await tx.create(self.orders.path(order.order_id), order.to_fields())
            await tx.update(
                self.requests.path(rid),
                {
                    "status": RequestStatus.BOUGHT.value,
                    "boughtAt": now,
                    "boughtRowIndex": row_index,
                    "boughtOrderId": order.order_id,
                    "updatedAt": now,
                },
            )
            await tx.update(row_path, {"isBought": True})
            order.id = order.order_id
            return order

        order = await self.store.run_transaction(_buy)
        logger.info("Request %s bought: row %d, order %s", rid, row_index, order.order_id)
        return order

    async def buy_offer(
        self,
        request_id: str,
        offer_id: str,
        buyer_name: Optional[str] = None,
        buyer_address: Optional[str] = None,
    ) -> Order:
        rid = safe(request_id)
        oid = safe(offer_id)
        if not rid:
            raise ValidationError(message="requestId required")
        if not oid:
            raise ValidationError(message="offerId required")

        async def _buy(tx: Transaction) -> Order:
            await self._load_request(tx, rid, RequestStatus.COMPLETED)
            offer_path = self.offers.offer_path(rid, oid)
            offer_doc = await tx.get(offer_path)
            if offer_doc is None:
                raise NotFoundError("OFFER_NOT_FOUND", f"offer {oid} of request {rid} not found")
            offer = Offer.from_document(offer_doc)

            now = utcnow()
            order = Order(
                order_id=new_order_id(),
                request_id=rid,
                offer_id=oid,
                menu=offer.menu_name,
                vendor=offer.vendor,
                price=offer.price,
                score=offer.rating,
                seller_id=offer.seller_id,
                buyer_name=safe(buyer_name),
                buyer_address=safe(buyer_address),
                status=OrderStatus.PAID,
                created_at=now,
            )
            await tx.create(self.orders.path(order.order_id), order.to_fields())
            await tx.update(
                self.requests.path(rid),
                {
                    "status": RequestStatus.COMPLETED.value,
                    "completedAt": now,
                    "updatedAt": now,
                    "selectedOfferId": oid,
                    "boughtOrderId": order.order_id,
                    "buyerName": order.buyer_name,
                    "address": order.buyer_address,
                },
            )
            await tx.update(offer_path, {"isBought": True})
            order.id = order.order_id
            return order

        order = await self.store.run_transaction(_buy)
        logger.info("Request %s completed: offer %s, order %s", rid, oid, order.order_id)
        return order

    async def create_order(
        self,
        request_id: str,
        item: str,
        row_index: Optional[int] = None,
        vendor: Optional[str] = None,
        price: Optional[int] = None,
        score: Optional[float] = None,
    ) -> Order:
        """Record an order by hand; the request itself is left untouched."""
        rid = safe(request_id)
        name = safe(item)
        if not rid or not name:
            raise ValidationError(message="requestId and item are required")
        order = Order(
            order_id="order_" + new_order_id()[len("ord_"):],
            request_id=rid,
            row_index=-1 if row_index is None else row_index,
            menu=name,
            item=name,
            vendor=safe(vendor),
            price=as_int(price),
            score=as_float(score),
            status=OrderStatus.NEW_ORDER,
            created_at=utcnow(),
        )
        return await self.orders.create(order)

    async def get_order(self, order_id: str) -> Order:
        order = await self.orders.get(safe(order_id))
        if order is None:
            raise NotFoundError("ORDER_NOT_FOUND", f"order {order_id} not found")
        return order

    async def list_orders(self, request_id: str) -> List[Order]:
        return await self.orders.list_for_request(safe(request_id))
