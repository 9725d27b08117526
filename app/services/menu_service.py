import logging
from typing import List, Optional

from app.core.errors import NotFoundError, ValidationError
from app.core.store import DocumentStore
from app.models.menu import MenuItem
from app.repositories.menu_repository import MenuRepository
from app.utils.text import normalize_category, safe

logger = logging.getLogger("menu_service")


def rank_menus(menus: List[MenuItem]) -> List[MenuItem]:
    """Best rated first, cheaper first among equal ratings."""
    return sorted(menus, key=lambda m: (-m.rating, m.price))


class MenuService:
    def __init__(self, store: DocumentStore):
        self.menus = MenuRepository(store)

    def map_category_from_text(self, text: Optional[str]) -> str:
        return normalize_category(text)

    async def find_available(self, category: Optional[str]) -> List[MenuItem]:
        key = normalize_category(category)
        if not key:
            return []
        found = [m for m in await self.menus.find_available(key) if safe(m.name)]
        logger.debug("Catalog lookup %r matched %d menus", key, len(found))
        return rank_menus(found)

    async def create_menu(
        self,
        name: str,
        category: str,
        seller_id: str = "",
        vendor: str = "",
        price: int = 0,
        eta_minutes: int = 0,
        rating: float = 0.0,
        available: bool = True,
    ) -> MenuItem:
        if not safe(name):
            raise ValidationError(message="menu name is required")
        if not normalize_category(category):
            raise ValidationError(message="menu category is required")
        menu = MenuItem(
            name=safe(name),
            category=normalize_category(category),
            seller_id=safe(seller_id),
            vendor=safe(vendor),
            price=max(price or 0, 0),
            eta_minutes=max(eta_minutes or 0, 0),
            rating=rating or 0.0,
            available=available,
        )
        return await self.menus.add(menu)

    async def set_availability(self, menu_id: str, available: bool) -> MenuItem:
        menu = await self.menus.get(safe(menu_id))
        if menu is None:
            raise NotFoundError("MENU_NOT_FOUND", f"menu {menu_id} not found")
        await self.menus.set_available(menu.id, available)
        menu.available = available
        return menu
