from fastapi import APIRouter, Depends, Response
from app.controllers.deps import get_purchase_service, get_request_service
from app.models.request import SenderType
from app.schemas.marketplace import BuyerRequestDto, CompleteDto, ConversationDto, MessageDto
from app.services.purchase_service import PurchaseService
from app.services.request_service import RequestService
from app.utils.ids import new_request_id
from app.utils.response import success_response

router = APIRouter(tags=["requests"])

# Buyer -> backend
@router.post("/requests")
async def create_request(dto: BuyerRequestDto, service: RequestService = Depends(get_request_service)):
    request = await service.create_request(dto.request_id, dto.text, dto.buyer_id)
    return success_response(data=request, message="Request created")

@router.post("/conversations")
async def create_conversation(dto: ConversationDto, service: RequestService = Depends(get_request_service)):
    request = await service.create_conversation(
        dto.request_id or new_request_id(), dto.buyer_id, dto.text, dto.buyer_request_no
    )
    return success_response(data=request, message="Conversation opened")

# Seller: claim a NEW request
@router.get("/requests/latest")
async def claim_latest_request(service: RequestService = Depends(get_request_service)):
    claimed = await service.claim_oldest_open()
    if claimed is None:
        return Response(status_code=204)
    return success_response(data=claimed, message="Request claimed")

@router.get("/requests/{request_id}")
async def get_request(request_id: str, service: RequestService = Depends(get_request_service)):
    return success_response(data=await service.get_request(request_id))

@router.delete("/requests/{request_id}")
async def delete_request(request_id: str, service: RequestService = Depends(get_request_service)):
    removed = await service.delete_request(request_id)
    return success_response(data={"requestId": request_id, "removedChildren": removed}, message="Request deleted")

@router.post("/requests/{request_id}/messages")
async def send_message(request_id: str, dto: MessageDto, service: RequestService = Depends(get_request_service)):
    if dto.sender_type == SenderType.BUYER:
        message = await service.send_buyer_message(request_id, dto.sender_id, dto.text)
    else:
        message = await service.send_seller_message(request_id, dto.sender_id, dto.text)
    return success_response(data=message, message="Message sent")

@router.get("/requests/{request_id}/messages")
async def list_messages(request_id: str, service: RequestService = Depends(get_request_service)):
    return success_response(data=await service.list_messages(request_id))

@router.get("/requests/{request_id}/question")
async def current_question(request_id: str, service: RequestService = Depends(get_request_service)):
    return success_response(data=await service.current_question(request_id))

# Buyer picks one offer
@router.post("/requests/{request_id}/complete")
async def complete_request(
    request_id: str,
    dto: CompleteDto,
    purchases: PurchaseService = Depends(get_purchase_service),
):
    order = await purchases.buy_offer(request_id, dto.offer_id, dto.buyer_name, dto.address)
    return success_response(data=order, message="Purchase simulated")
