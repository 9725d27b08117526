from datetime import datetime
from typing import List, Optional

from app.schemas.base import DocumentModel


class Offer(DocumentModel):
    request_id: str
    seller_id: str = ""
    menu_name: str
    price: int = 0
    vendor: str = ""
    eta_minutes: int = 0
    rating: float = 0.0
    buyer_message_id: str = ""
    slot: Optional[int] = None
    is_bought: bool = False
    created_at: Optional[datetime] = None


class OfferSlotLedger(DocumentModel):
    """Per (request, buyer message) allocation record; every offer write touches it."""
    request_id: str
    buyer_message_id: str
    count: int = 0
    menu_keys: List[str] = []
    updated_at: Optional[datetime] = None


class Row(DocumentModel):
    request_id: str
    row_index: int
    content: str
    vendor: str = ""
    price: int = 0
    score: float = 0.0
    seller_id: Optional[str] = None
    is_bought: bool = False
    updated_at: Optional[datetime] = None
