"""Offers sellers send against a buyer message, and the legacy row slots.

At most ``max_offers_per_message`` offers exist per (request, buyer message)
and a menu is offered at most once per pair. Both rules are enforced by the
slot ledger document ``requests/{id}/offerSlots/{buyerMessageId}``, which is
read and rewritten in the same transaction that creates the offer, so
concurrent sellers serialize on it.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from app.core.config import settings
from app.core.errors import NotFoundError, SlotsFullError, ValidationError, DuplicateOfferError
from app.core.store import DocumentStore, Transaction
from app.core.subscription import Subscription
from app.models.menu import MenuItem
from app.models.offer import Offer, OfferSlotLedger, Row
from app.models.request import MarketRequest, RequestStatus, ensure_transition
from app.repositories.offer_repository import OfferRepository
from app.repositories.request_repository import RequestRepository
from app.services.menu_service import MenuService
from app.utils.clock import utcnow
from app.utils.ids import time_ordered_id
from app.utils.text import as_float, as_int, normalize_category, safe

logger = logging.getLogger("offer_service")


def menu_key(menu_name: Optional[str]) -> str:
    return normalize_category(menu_name)


@dataclass
class PickResult:
    slot: int
    menu_name: str


class OfferSlotAllocator:
    def __init__(self, offers: OfferRepository, max_offers: Optional[int] = None):
        self.offers = offers
        self.max_offers = max_offers or settings.max_offers_per_message

    async def count_offers(self, request_id: str, buyer_message_id: str) -> int:
        ledger = await self.offers.get_ledger(request_id, buyer_message_id)
        if ledger is not None:
            return ledger.count
        # offers written before the ledger existed
        return len(await self.offers.list_offers(request_id, buyer_message_id))

    async def try_allocate(self, tx: Transaction, request_id: str, buyer_message_id: str, key: str) -> int:
        """Reserve the next slot for ``key`` inside ``tx`` and return its number."""
        path = self.offers.ledger_path(request_id, buyer_message_id)
        doc = await tx.get(path)
        if doc is not None:
            ledger = OfferSlotLedger.from_document(doc)
        else:
            ledger = OfferSlotLedger(request_id=request_id, buyer_message_id=buyer_message_id)
        if ledger.count >= self.max_offers:
            raise SlotsFullError(message=f"maximum {self.max_offers} offers per buyer message")
        if key in ledger.menu_keys:
            raise DuplicateOfferError(message="this menu was already offered for the message")
        slot = ledger.count
        ledger.count += 1
        ledger.menu_keys = ledger.menu_keys + [key]
        ledger.updated_at = utcnow()
        await tx.set(path, ledger.to_fields())
        return slot


class OfferService:
    def __init__(self, store: DocumentStore, menu_service: Optional[MenuService] = None):
        self.store = store
        self.requests = RequestRepository(store)
        self.offers = OfferRepository(store)
        self.allocator = OfferSlotAllocator(self.offers)
        self.menu_service = menu_service or MenuService(store)

    async def _open_request(self, tx: Transaction, request_id: str) -> MarketRequest:
        doc = await tx.get(self.requests.path(request_id))
        if doc is None:
            raise NotFoundError("REQUEST_NOT_FOUND", f"request {request_id} not found")
        request = MarketRequest.from_document(doc)
        if request.is_terminal:
            ensure_transition(request.status, RequestStatus.BOUGHT)
        return request

    async def count_offers(self, request_id: str, buyer_message_id: str) -> int:
        rid, bmid = safe(request_id), safe(buyer_message_id)
        if not rid or not bmid:
            raise ValidationError(message="requestId and buyerMessageId are required")
        return await self.allocator.count_offers(rid, bmid)

    async def submit_offer(
        self,
        request_id: str,
        seller_id: str,
        menu_name: str,
        price: int = 0,
        vendor: str = "",
        eta_minutes: int = 0,
        rating: float = 0.0,
        buyer_message_id: Optional[str] = None,
    ) -> Offer:
        rid = safe(request_id)
        name = safe(menu_name)
        if not rid:
            raise ValidationError(message="requestId is required")
        if not name:
            raise ValidationError(message="menuName is required")

        async def _submit(tx: Transaction) -> Offer:
            request = await self._open_request(tx, rid)
            bmid = safe(buyer_message_id) or safe(request.latest_buyer_message_id)
            if not bmid:
                raise ValidationError(message="buyerMessageId is required")
            slot = await self.allocator.try_allocate(tx, rid, bmid, menu_key(name))
            offer = Offer(
                id=time_ordered_id(),
                request_id=rid,
                seller_id=safe(seller_id),
                menu_name=name,
                price=max(as_int(price), 0),
                vendor=safe(vendor),
                eta_minutes=max(as_int(eta_minutes), 0),
                rating=as_float(rating),
                buyer_message_id=bmid,
                slot=slot,
                created_at=utcnow(),
            )
            await tx.create(self.offers.offer_path(rid, offer.id), offer.to_fields())
            return offer

        offer = await self.store.run_transaction(_submit)
        logger.info(
            "Offer %s (%s) sent by %r for request %s message %s, slot %d",
            offer.id, offer.menu_name, offer.seller_id, rid, offer.buyer_message_id, offer.slot,
        )
        return offer

    async def create_offer_from_menu(
        self, request_id: str, seller_id: str, menu: MenuItem, buyer_message_id: Optional[str] = None
    ) -> Offer:
        return await self.submit_offer(
            request_id,
            seller_id,
            menu.name,
            price=menu.price,
            vendor=menu.vendor,
            eta_minutes=menu.eta_minutes,
            rating=menu.rating,
            buyer_message_id=buyer_message_id,
        )

    async def create_offer_typed(
        self, request_id: str, seller_id: str, menu_name: str, price: int, buyer_message_id: Optional[str] = None
    ) -> Offer:
        return await self.submit_offer(request_id, seller_id, menu_name, price=price, buyer_message_id=buyer_message_id)

    async def create_menu_and_send_offer(
        self,
        request_id: str,
        seller_id: str,
        menu_name: str,
        price: int,
        vendor: str = "",
        category: Optional[str] = None,
        buyer_message_id: Optional[str] = None,
    ) -> Offer:
        """Add a menu to the seller's catalog under the buyer's category and offer it."""
        if not normalize_category(category):
            request = await self.requests.get(safe(request_id))
            if request is None:
                raise NotFoundError("REQUEST_NOT_FOUND", f"request {request_id} not found")
            category = request.question_text
        menu = await self.menu_service.create_menu(
            menu_name, category, seller_id=seller_id, vendor=vendor, price=price
        )
        return await self.create_offer_from_menu(request_id, seller_id, menu, buyer_message_id)

    async def list_offers(self, request_id: str, buyer_message_id: Optional[str] = None) -> List[Offer]:
        return await self.offers.list_offers(safe(request_id), safe(buyer_message_id) or None)

    def listen_offers(self, request_id: str, buyer_message_id: Optional[str] = None) -> Subscription:
        rid = safe(request_id)
        if not rid:
            raise ValidationError(message="requestId is required")
        query = self.offers.offers_query(rid, safe(buyer_message_id) or None)
        return self.store.subscribe(query, name=f"offers:{rid}")

    # -- legacy row slots -------------------------------------------------

    def _check_row_index(self, row_index: int) -> int:
        if not isinstance(row_index, int) or not 0 <= row_index < settings.row_slots:
            raise ValidationError(message=f"rowIndex must be 0..{settings.row_slots - 1}")
        return row_index

    async def _first_empty_slot(self, tx: Transaction, request_id: str) -> int:
        used = set()
        for index in range(settings.row_slots):
            if await tx.get(self.offers.row_path(request_id, index)) is not None:
                used.add(index)
        for index in range(settings.row_slots):
            if index not in used:
                return index
        raise SlotsFullError(message="all row slots are taken")

    async def first_empty_slot(self, request_id: str) -> int:
        rid = safe(request_id)
        if not rid:
            raise ValidationError(message="requestId is required")

        async def _peek(tx: Transaction) -> int:
            return await self._first_empty_slot(tx, rid)

        return await self.store.run_transaction(_peek)

    async def pick_menu(
        self,
        request_id: str,
        menu_name: str,
        vendor: Optional[str] = None,
        price: Optional[int] = None,
        score: Optional[float] = None,
        seller_id: Optional[str] = None,
    ) -> PickResult:
        """Put a menu into the first free row of a request."""
        rid = safe(request_id)
        name = safe(menu_name)
        if not rid or not name:
            raise ValidationError(message="requestId and menuName are required")

        async def _pick(tx: Transaction) -> PickResult:
            await self._open_request(tx, rid)
            slot = await self._first_empty_slot(tx, rid)
            now = utcnow()
            row = Row(
                request_id=rid,
                row_index=slot,
                content=name,
                vendor=safe(vendor),
                price=as_int(price),
                score=as_float(score),
                seller_id=safe(seller_id) or None,
                updated_at=now,
            )
            await tx.create(self.offers.row_path(rid, slot), row.to_fields())
            # every pick rewrites the request so concurrent picks conflict
            await tx.update(self.requests.path(rid), {"updatedAt": now})
            return PickResult(slot=slot, menu_name=name)

        result = await self.store.run_transaction(_pick)
        logger.info("Row %d of request %s filled with %r", result.slot, rid, result.menu_name)
        return result

    async def save_row(
        self,
        request_id: str,
        row_index: int,
        content: str,
        vendor: Optional[str] = None,
        price: Optional[int] = None,
        score: Optional[float] = None,
    ) -> Row:
        rid = safe(request_id)
        if not rid:
            raise ValidationError(message="requestId is required")
        index = self._check_row_index(row_index)
        if not safe(content):
            raise ValidationError(message="content is required")
        row = Row(
            request_id=rid,
            row_index=index,
            content=safe(content),
            vendor=safe(vendor),
            price=as_int(price),
            score=as_float(score),
            updated_at=utcnow(),
        )

        async def _save(tx: Transaction) -> Row:
            await self._open_request(tx, rid)
            await tx.set(self.offers.row_path(rid, index), row.to_fields())
            await tx.update(self.requests.path(rid), {"updatedAt": row.updated_at})
            return row

        return await self.store.run_transaction(_save)

    async def get_rows(self, request_id: str) -> List[Row]:
        rid = safe(request_id)
        rows = await self.offers.list_rows(rid)
        return sorted(rows, key=lambda r: r.row_index)
