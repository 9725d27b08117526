import asyncio
import logging
from typing import Any, Dict, List
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from app.controllers.deps import get_offer_service, get_request_service
from app.core.errors import MarketplaceError
from app.core.store import Document
from app.core.subscription import Subscription
from app.services.offer_service import OfferService
from app.services.request_service import RequestService

logger = logging.getLogger("stream_controller")

router = APIRouter(prefix="/ws", tags=["streams"])

def documents_payload(documents: List[Document]) -> List[Dict[str, Any]]:
    return jsonable_encoder([{"id": d.id, **d.data} for d in documents])

async def wait_for_disconnect(websocket: WebSocket) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return

async def stream_subscription(websocket: WebSocket, subscription: Subscription, kind: str) -> None:
    """Push every snapshot of ``subscription`` until the client goes away."""
    async def pump():
        async for snapshot in subscription.listen():
            await websocket.send_json({"type": "snapshot", "kind": kind, "data": documents_payload(snapshot.documents)})

    pump_task = asyncio.ensure_future(pump())
    closed_task = asyncio.ensure_future(wait_for_disconnect(websocket))
    try:
        done, _ = await asyncio.wait({pump_task, closed_task}, return_when=asyncio.FIRST_COMPLETED)
        if pump_task in done and pump_task.exception() is not None:
            exc = pump_task.exception()
            if isinstance(exc, MarketplaceError):
                await websocket.send_json({"type": "error", "error": {"code": exc.code}})
            elif not isinstance(exc, WebSocketDisconnect):
                logger.error("Stream %s failed: %s", kind, exc)
    finally:
        pump_task.cancel()
        closed_task.cancel()
        subscription.cancel()
        logger.info("Stream %s closed", kind)

@router.websocket("/requests/open")
async def open_requests(websocket: WebSocket, service: RequestService = Depends(get_request_service)):
    await websocket.accept()
    await stream_subscription(websocket, service.listen_open_requests(), "open_requests")

@router.websocket("/requests/new")
async def new_requests(websocket: WebSocket, service: RequestService = Depends(get_request_service)):
    await websocket.accept()
    await stream_subscription(websocket, service.listen_new_requests(), "new_requests")

@router.websocket("/requests/{request_id}/messages")
async def request_messages(websocket: WebSocket, request_id: str, service: RequestService = Depends(get_request_service)):
    await websocket.accept()
    await stream_subscription(websocket, service.listen_messages(request_id), "messages")

@router.websocket("/requests/{request_id}/offers")
async def request_offers(websocket: WebSocket, request_id: str, service: OfferService = Depends(get_offer_service)):
    await websocket.accept()
    await stream_subscription(websocket, service.listen_offers(request_id), "offers")

@router.websocket("/buyers/{buyer_id}/requests")
async def buyer_requests(websocket: WebSocket, buyer_id: str, service: RequestService = Depends(get_request_service)):
    await websocket.accept()
    await stream_subscription(websocket, service.listen_buyer_requests(buyer_id), "buyer_requests")
