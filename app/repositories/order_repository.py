from typing import List, Optional

from app.core.store import DocumentStore, Query, join_path
from app.models.order import Order

ORDERS = "orders"


class OrderRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    def path(self, order_id: str) -> str:
        return join_path(ORDERS, order_id)

    async def create(self, order: Order) -> Order:
        await self.store.create(self.path(order.order_id), order.to_fields())
        order.id = order.order_id
        return order

    async def get(self, order_id: str) -> Optional[Order]:
        doc = await self.store.get(self.path(order_id))
        return Order.from_document(doc) if doc else None

    async def list_for_request(self, request_id: str) -> List[Order]:
        docs = await self.store.query(Query(ORDERS).where("requestId", request_id).order("createdAt"))
        return [Order.from_document(d) for d in docs]
