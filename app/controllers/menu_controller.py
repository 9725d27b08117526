from fastapi import APIRouter, Depends, Query
from app.controllers.deps import get_menu_service
from app.schemas.marketplace import AvailabilityDto, MenuDto
from app.services.menu_service import MenuService
from app.utils.response import success_response

router = APIRouter(prefix="/menus", tags=["menus"])

@router.get("")
async def find_menus(category: str = Query(""), service: MenuService = Depends(get_menu_service)):
    return success_response(data=await service.find_available(category))

@router.post("")
async def create_menu(dto: MenuDto, service: MenuService = Depends(get_menu_service)):
    menu = await service.create_menu(
        dto.name,
        dto.category,
        seller_id=dto.seller_id,
        vendor=dto.vendor,
        price=dto.price,
        eta_minutes=dto.eta_minutes,
        rating=dto.rating,
        available=dto.available,
    )
    return success_response(data=menu, message="Menu created")

@router.patch("/{menu_id}/availability")
async def set_availability(menu_id: str, dto: AvailabilityDto, service: MenuService = Depends(get_menu_service)):
    return success_response(data=await service.set_availability(menu_id, dto.available))
