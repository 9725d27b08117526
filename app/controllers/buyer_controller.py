from fastapi import APIRouter, Depends, Query
from app.controllers.deps import get_offer_service, get_purchase_service
from app.schemas.marketplace import BuyerBuyDto
from app.services.offer_service import OfferService
from app.services.purchase_service import PurchaseService
from app.utils.response import success_response

router = APIRouter(prefix="/buyer", tags=["buyer"])

@router.get("/rows")
async def get_buyer_rows(
    request_id: str = Query("", alias="requestId"),
    service: OfferService = Depends(get_offer_service),
):
    rid = request_id.strip()
    rows = await service.get_rows(rid)
    return success_response(data={"requestId": rid, "rows": rows})

@router.post("/buy")
async def buy(dto: BuyerBuyDto, purchases: PurchaseService = Depends(get_purchase_service)):
    order = await purchases.buy_row(dto.request_id, dto.row_index, dto.buyer_name, dto.buyer_address)
    return success_response(data=order, message="Purchase simulated")
