"""State of one connected seller.

The store's slot ledger decides whether an offer is accepted. The session
only remembers what this seller is looking at and which sends are still in
flight, so two sessions never share anything.
"""
import logging
from typing import Awaitable, Callable, List, Optional

from app.core.background import BackgroundRunner
from app.core.errors import MarketplaceError, ValidationError
from app.models.menu import MenuItem
from app.models.offer import Offer
from app.models.request import MarketRequest
from app.services.menu_service import MenuService
from app.services.offer_service import OfferService
from app.services.request_service import RequestService

logger = logging.getLogger("seller_session")

OfferCallback = Callable[[Offer], Awaitable[None]]
ErrorCallback = Callable[[MarketplaceError], Awaitable[None]]


class SellerSession:
    def __init__(
        self,
        seller_id: str,
        request_service: RequestService,
        offer_service: OfferService,
        menu_service: MenuService,
        on_offer_sent: Optional[OfferCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.seller_id = seller_id
        self.request_service = request_service
        self.offer_service = offer_service
        self.menu_service = menu_service
        self._on_offer_sent = on_offer_sent
        self.runner = BackgroundRunner(f"seller:{seller_id}", on_error=on_error)
        self.request: Optional[MarketRequest] = None
        self.buyer_message_id: Optional[str] = None
        self.menus: List[MenuItem] = []

    async def select_request(self, request_id: str) -> List[MenuItem]:
        """Focus on a request and load the catalog entries for its question."""
        self.request = await self.request_service.get_request(request_id)
        question = await self.request_service.current_question(request_id)
        self.buyer_message_id = question.id if question else self.request.latest_buyer_message_id
        text = question.text if question else self.request.question_text
        self.menus = await self.menu_service.find_available(self.menu_service.map_category_from_text(text))
        logger.info(
            "Seller %s selected %s (%d matching menus)", self.seller_id, request_id, len(self.menus)
        )
        return self.menus

    async def sent_count(self) -> int:
        if self.request is None or not self.buyer_message_id:
            return 0
        return await self.offer_service.count_offers(self.request.request_id, self.buyer_message_id)

    def send_offer(self, menu: MenuItem):
        """Send ``menu`` in the background; the outcome arrives via callbacks."""
        if self.request is None:
            raise ValidationError(message="select a request first")
        request_id = self.request.request_id
        buyer_message_id = self.buyer_message_id
        return self.runner.spawn(self._send(request_id, menu, buyer_message_id))

    async def _send(self, request_id: str, menu: MenuItem, buyer_message_id: Optional[str]) -> Offer:
        offer = await self.offer_service.create_offer_from_menu(request_id, self.seller_id, menu, buyer_message_id)
        if self._on_offer_sent is not None:
            await self._on_offer_sent(offer)
        return offer

    def send_message(self, text: str):
        if self.request is None:
            raise ValidationError(message="select a request first")
        return self.runner.spawn(
            self.request_service.send_seller_message(self.request.request_id, self.seller_id, text)
        )

    async def close(self) -> None:
        self.runner.cancel()
        self.request = None
        self.menus = []
