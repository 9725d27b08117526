import asyncio
import logging
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from app.core.database import close_store, get_store
from app.services.menu_service import MenuService

logger = logging.getLogger("seed_menus")

SAMPLE_MENUS = [
    {"name": "Nasi Padang Rendang", "category": "nasi padang", "vendor": "RM Sederhana", "price": 20000, "eta_minutes": 25, "rating": 4.8, "seller_id": "seller_1"},
    {"name": "Nasi Padang Ayam Pop", "category": "nasi padang", "vendor": "RM Sinar Minang", "price": 15000, "eta_minutes": 20, "rating": 4.5, "seller_id": "seller_2"},
    {"name": "Nasi Padang Gulai Ikan", "category": "nasi padang", "vendor": "RM Sederhana", "price": 18000, "eta_minutes": 30, "rating": 4.5, "seller_id": "seller_1"},
    {"name": "Sate Ayam Madura", "category": "sate", "vendor": "Sate Cak Man", "price": 25000, "eta_minutes": 15, "rating": 4.7, "seller_id": "seller_3"},
    {"name": "Sate Kambing", "category": "sate", "vendor": "Sate Cak Man", "price": 35000, "eta_minutes": 20, "rating": 4.6, "seller_id": "seller_3"},
]

async def seed_menus():
    service = MenuService(get_store())
    try:
        for entry in SAMPLE_MENUS:
            menu = await service.create_menu(**entry)
            logger.info("Seeded %s (%s) as %s", menu.name, menu.category, menu.id)
        print(f"✅ Seeded {len(SAMPLE_MENUS)} menus")
    finally:
        await close_store()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed_menus())
