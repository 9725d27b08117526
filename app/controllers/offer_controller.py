from typing import Optional
from fastapi import APIRouter, Depends, Query
from app.controllers.deps import get_offer_service
from app.schemas.marketplace import NewMenuOfferDto, OfferDto
from app.services.offer_service import OfferService
from app.utils.response import success_response

router = APIRouter(prefix="/requests/{request_id}/offers", tags=["offers"])

@router.get("")
async def list_offers(
    request_id: str,
    buyer_message_id: Optional[str] = Query(None, alias="buyerMessageId"),
    service: OfferService = Depends(get_offer_service),
):
    return success_response(data=await service.list_offers(request_id, buyer_message_id))

@router.get("/count")
async def count_offers(
    request_id: str,
    buyer_message_id: str = Query(..., alias="buyerMessageId"),
    service: OfferService = Depends(get_offer_service),
):
    count = await service.count_offers(request_id, buyer_message_id)
    return success_response(data={"requestId": request_id, "buyerMessageId": buyer_message_id, "count": count})

@router.post("")
async def send_offer(request_id: str, dto: OfferDto, service: OfferService = Depends(get_offer_service)):
    offer = await service.submit_offer(
        request_id,
        dto.seller_id,
        dto.menu_name,
        price=dto.price,
        vendor=dto.vendor,
        eta_minutes=dto.eta_minutes,
        rating=dto.rating,
        buyer_message_id=dto.buyer_message_id,
    )
    return success_response(data=offer, message="Offer sent")

@router.post("/new-menu")
async def send_new_menu_offer(request_id: str, dto: NewMenuOfferDto, service: OfferService = Depends(get_offer_service)):
    offer = await service.create_menu_and_send_offer(
        request_id,
        dto.seller_id,
        dto.menu_name,
        dto.price,
        vendor=dto.vendor,
        category=dto.category,
        buyer_message_id=dto.buyer_message_id,
    )
    return success_response(data=offer, message="Menu created and offered")
