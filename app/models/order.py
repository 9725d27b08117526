from datetime import datetime
from enum import Enum
from typing import Optional

from app.schemas.base import DocumentModel


class OrderStatus(str, Enum):
    PAID = "PAID"
    NEW_ORDER = "NEW_ORDER"


class Order(DocumentModel):
    order_id: str
    request_id: str
    row_index: int = -1
    offer_id: Optional[str] = None
    menu: str = ""
    item: Optional[str] = None
    vendor: str = ""
    price: int = 0
    score: Optional[float] = None
    seller_id: Optional[str] = None
    buyer_name: str = ""
    buyer_address: str = ""
    status: OrderStatus = OrderStatus.PAID
    created_at: Optional[datetime] = None
