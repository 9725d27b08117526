from pydantic import BaseModel, Field
from typing import Optional

from app.models.request import SenderType
from app.schemas.base import BaseSchema

class BuyerRequestDto(BaseSchema):
    request_id: str = Field("", description="Caller supplied request id")
    text: str = Field("", description="Free text of what the buyer wants")
    buyer_id: str = ""

class ConversationDto(BaseSchema):
    request_id: Optional[str] = Field(None, description="Generated when omitted")
    buyer_id: str = ""
    text: str = ""
    buyer_request_no: int = 0

class MessageDto(BaseSchema):
    sender_type: SenderType
    sender_id: str = ""
    text: str = ""

class OfferDto(BaseSchema):
    seller_id: str = ""
    menu_name: str = ""
    price: int = 0
    vendor: str = ""
    eta_minutes: int = 0
    rating: float = 0.0
    buyer_message_id: Optional[str] = None

class NewMenuOfferDto(BaseSchema):
    seller_id: str = ""
    menu_name: str = ""
    price: int = 0
    vendor: str = ""
    category: Optional[str] = None
    buyer_message_id: Optional[str] = None

class CompleteDto(BaseSchema):
    offer_id: str = ""
    buyer_name: Optional[str] = None
    address: Optional[str] = None

class PickMenuDto(BaseSchema):
    request_id: str = ""
    menu_name: str = ""
    vendor: Optional[str] = None
    price: Optional[int] = None
    score: Optional[float] = None
    seller_id: Optional[str] = None

class SellerRowDto(BaseSchema):
    request_id: str = ""
    row_index: int = Field(-1, description="0..2")
    content: str = ""
    vendor: Optional[str] = None
    price: Optional[int] = None
    score: Optional[float] = None

class BuyerBuyDto(BaseSchema):
    request_id: str = ""
    row_index: int = Field(-1, description="0..2")
    buyer_name: Optional[str] = None
    buyer_address: Optional[str] = None

class OrderDto(BaseSchema):
    request_id: str = ""
    row_index: Optional[int] = None
    item: str = ""
    vendor: Optional[str] = None
    price: Optional[int] = None
    score: Optional[float] = None

class MenuDto(BaseSchema):
    name: str = ""
    category: str = ""
    seller_id: str = ""
    vendor: str = ""
    price: int = 0
    eta_minutes: int = 0
    rating: float = 0.0
    available: bool = True

class AvailabilityDto(BaseModel):
    available: bool
