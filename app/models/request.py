from datetime import datetime
from enum import Enum
from typing import Optional

from app.core.errors import AlreadyBoughtError, InvalidTransitionError
from app.schemas.base import BaseSchema, DocumentModel


class RequestStatus(str, Enum):
    NEW = "NEW"
    OPEN = "OPEN"
    CLAIMED = "CLAIMED"
    BOUGHT = "BOUGHT"
    COMPLETED = "COMPLETED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


INITIAL_STATUSES = frozenset({RequestStatus.NEW, RequestStatus.OPEN})
TERMINAL_STATUSES = frozenset({RequestStatus.BOUGHT, RequestStatus.COMPLETED})

ALLOWED_TRANSITIONS = {
    RequestStatus.NEW: frozenset({RequestStatus.CLAIMED}) | TERMINAL_STATUSES,
    RequestStatus.OPEN: frozenset({RequestStatus.CLAIMED}) | TERMINAL_STATUSES,
    RequestStatus.CLAIMED: TERMINAL_STATUSES,
    RequestStatus.BOUGHT: frozenset(),
    RequestStatus.COMPLETED: frozenset(),
}


def ensure_transition(current, target) -> None:
    """Raise unless ``current -> target`` moves the request forward."""
    current = RequestStatus(current)
    target = RequestStatus(target)
    if current in TERMINAL_STATUSES:
        raise AlreadyBoughtError(message=f"request is already {current.value}")
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(message=f"cannot move request from {current.value} to {target.value}")


class SenderType(str, Enum):
    BUYER = "BUYER"
    SELLER = "SELLER"


class MarketRequest(DocumentModel):
    request_id: str
    buyer_id: str = ""
    text: str = ""
    buyer_text: Optional[str] = None
    latest_buyer_text: Optional[str] = None
    latest_buyer_message_id: Optional[str] = None
    category: str = ""
    status: RequestStatus = RequestStatus.NEW
    buyer_request_no: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    bought_at: Optional[datetime] = None
    bought_row_index: Optional[int] = None
    bought_order_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    selected_offer_id: Optional[str] = None
    buyer_name: Optional[str] = None
    address: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return RequestStatus(self.status).is_terminal

    @property
    def question_text(self) -> str:
        return self.latest_buyer_text or self.buyer_text or self.text


class Message(DocumentModel):
    request_id: str
    sender_type: SenderType
    sender_id: str = ""
    text: str
    created_at: Optional[datetime] = None


class ClaimedRequest(BaseSchema):
    request_id: str
    text: str = ""
