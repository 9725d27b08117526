from typing import List, Optional

from app.core.store import DocumentStore, Query, join_path
from app.models.menu import MenuItem

MENUS = "menus"


class MenuRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def add(self, menu: MenuItem) -> MenuItem:
        menu.id = await self.store.add(MENUS, menu.to_fields())
        return menu

    async def get(self, menu_id: str) -> Optional[MenuItem]:
        doc = await self.store.get(join_path(MENUS, menu_id))
        return MenuItem.from_document(doc) if doc else None

    async def set_available(self, menu_id: str, available: bool) -> None:
        await self.store.update(join_path(MENUS, menu_id), {"available": available})

    async def find_available(self, category: str) -> List[MenuItem]:
        query = Query(MENUS).where("category", category).where("available", True)
        return [MenuItem.from_document(d) for d in await self.store.query(query)]
