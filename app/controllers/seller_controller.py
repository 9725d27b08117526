import asyncio
import logging
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from app.controllers.deps import get_menu_service, get_offer_service, get_request_service
from app.controllers.stream_controller import documents_payload
from app.core.errors import MarketplaceError, ValidationError
from app.schemas.marketplace import PickMenuDto, SellerRowDto
from app.services.menu_service import MenuService
from app.services.offer_service import OfferService
from app.services.request_service import RequestService
from app.services.seller_session import SellerSession
from app.utils.response import success_response, to_payload

logger = logging.getLogger("seller_controller")

router = APIRouter(tags=["seller"])

# Seller: click a menu, it lands in the first empty row
@router.post("/seller/pick")
async def pick_menu(dto: PickMenuDto, service: OfferService = Depends(get_offer_service)):
    result = await service.pick_menu(
        dto.request_id, dto.menu_name, vendor=dto.vendor, price=dto.price, score=dto.score, seller_id=dto.seller_id
    )
    return success_response(data={"slot": result.slot, "menuName": result.menu_name}, message="Menu picked")

@router.post("/seller/row")
async def save_seller_row(dto: SellerRowDto, service: OfferService = Depends(get_offer_service)):
    row = await service.save_row(dto.request_id, dto.row_index, dto.content, dto.vendor, dto.price, dto.score)
    return success_response(data=row, message="Row saved")

async def _handle_action(session: SellerSession, websocket: WebSocket, payload: dict) -> None:
    if not isinstance(payload, dict):
        raise ValidationError(message="expected a JSON object")
    action = payload.get("action")
    if action == "select":
        menus = await session.select_request(payload.get("requestId", ""))
        await websocket.send_json(jsonable_encoder({
            "type": "menus",
            "requestId": session.request.request_id,
            "buyerMessageId": session.buyer_message_id,
            "sent": await session.sent_count(),
            "menus": [{**to_payload(m), "subtitle": m.subtitle()} for m in menus],
        }))
    elif action == "offer":
        index = payload.get("index")
        if not isinstance(index, int) or not 0 <= index < len(session.menus):
            raise ValidationError(message="unknown menu index")
        session.send_offer(session.menus[index])
    elif action == "message":
        session.send_message(payload.get("text", ""))
    else:
        raise ValidationError(message=f"unknown action {action!r}")

# Seller desk: live inbox plus fire-and-forget offers over one socket
@router.websocket("/ws/seller/{seller_id}")
async def seller_desk(
    websocket: WebSocket,
    seller_id: str,
    requests: RequestService = Depends(get_request_service),
    offers: OfferService = Depends(get_offer_service),
    menus: MenuService = Depends(get_menu_service),
):
    await websocket.accept()

    async def on_offer_sent(offer):
        await websocket.send_json(jsonable_encoder({"type": "offer_sent", "offer": to_payload(offer)}))

    async def on_error(exc: MarketplaceError):
        await websocket.send_json({"type": "error", "error": {"code": exc.code, "message": exc.message}})

    session = SellerSession(seller_id, requests, offers, menus, on_offer_sent=on_offer_sent, on_error=on_error)
    inbox = requests.listen_open_requests()

    async def push_inbox():
        try:
            async for snapshot in inbox.listen():
                await websocket.send_json({"type": "open_requests", "data": documents_payload(snapshot.documents)})
        except MarketplaceError as exc:
            logger.warning("Seller %s lost the open requests feed: %s", seller_id, exc.code)
            await on_error(exc)

    inbox_task = asyncio.ensure_future(push_inbox())
    try:
        while True:
            try:
                payload = await websocket.receive_json()
            except ValueError:
                await on_error(ValidationError(message="expected a JSON object"))
                continue
            try:
                await _handle_action(session, websocket, payload)
            except MarketplaceError as exc:
                await on_error(exc)
    except WebSocketDisconnect:
        logger.info("Seller %s disconnected", seller_id)
    finally:
        inbox_task.cancel()
        inbox.cancel()
        await session.close()
