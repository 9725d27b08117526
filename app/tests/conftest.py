import pytest
from fastapi.testclient import TestClient

from app.core.database import get_store
from app.core.memory_store import MemoryDocumentStore
from app.main import app
from app.services.menu_service import MenuService
from app.services.offer_service import OfferService
from app.services.purchase_service import PurchaseService
from app.services.request_service import RequestService


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def requests_service(store):
    return RequestService(store)


@pytest.fixture
def menus(store):
    return MenuService(store)


@pytest.fixture
def offers(store, menus):
    return OfferService(store, menus)


@pytest.fixture
def purchases(store):
    return PurchaseService(store)


@pytest.fixture
def client(store):
    """TestClient wired to a fresh in-memory store."""
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
