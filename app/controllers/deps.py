from fastapi import Depends

from app.core.database import get_store
from app.core.store import DocumentStore
from app.services.menu_service import MenuService
from app.services.offer_service import OfferService
from app.services.purchase_service import PurchaseService
from app.services.request_service import RequestService


def get_request_service(store: DocumentStore = Depends(get_store)) -> RequestService:
    return RequestService(store)


def get_menu_service(store: DocumentStore = Depends(get_store)) -> MenuService:
    return MenuService(store)


def get_offer_service(store: DocumentStore = Depends(get_store)) -> OfferService:
    return OfferService(store)


def get_purchase_service(store: DocumentStore = Depends(get_store)) -> PurchaseService:
    return PurchaseService(store)
