from fastapi import APIRouter, Depends, Query
from app.controllers.deps import get_purchase_service
from app.schemas.marketplace import OrderDto
from app.services.purchase_service import PurchaseService
from app.utils.response import success_response

router = APIRouter(prefix="/orders", tags=["orders"])

@router.post("")
async def create_order(dto: OrderDto, purchases: PurchaseService = Depends(get_purchase_service)):
    order = await purchases.create_order(
        dto.request_id, dto.item, row_index=dto.row_index, vendor=dto.vendor, price=dto.price, score=dto.score
    )
    return success_response(data=order, message="Order created")

@router.get("")
async def list_orders(
    request_id: str = Query(..., alias="requestId"),
    purchases: PurchaseService = Depends(get_purchase_service),
):
    return success_response(data=await purchases.list_orders(request_id))

@router.get("/{order_id}")
async def get_order(order_id: str, purchases: PurchaseService = Depends(get_purchase_service)):
    return success_response(data=await purchases.get_order(order_id))
