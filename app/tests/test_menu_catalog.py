import pytest

from app.core.errors import NotFoundError, ValidationError
from app.models.menu import MenuItem
from app.services.menu_service import rank_menus


async def test_best_rated_menu_comes_first(menus):
    await menus.create_menu("Nasi Padang Rendang", "nasi padang", vendor="Sederhana", price=15000, rating=4.5)
    await menus.create_menu("Nasi Padang Ayam Pop", "nasi padang", vendor="Garuda", price=20000, rating=4.8)
    await menus.create_menu("Sate Padang", "sate padang", vendor="Mak Syukur", price=25000, rating=4.9)

    found = await menus.find_available(" Nasi Padang ")

    assert [m.rating for m in found] == [4.8, 4.5]
    assert [m.vendor for m in found] == ["Garuda", "Sederhana"]


async def test_equal_ratings_prefer_lower_price(menus):
    await menus.create_menu("Mie Ayam Jumbo", "mie ayam", price=20000, rating=4.0)
    await menus.create_menu("Mie Ayam Biasa", "mie ayam", price=12000, rating=4.0)

    found = await menus.find_available("MIE AYAM")

    assert [m.name for m in found] == ["Mie Ayam Biasa", "Mie Ayam Jumbo"]


async def test_unavailable_and_unnamed_menus_are_hidden(menus, store):
    hidden = await menus.create_menu("Gado Gado", "gado gado", price=15000)
    await menus.create_menu("Gado Gado Siram", "gado gado", price=17000)
    await store.add("menus", {"name": "  ", "category": "gado gado", "available": True})

    await menus.set_availability(hidden.id, False)

    found = await menus.find_available("gado gado")
    assert [m.name for m in found] == ["Gado Gado Siram"]


@pytest.mark.parametrize("category", ["", "   ", None])
async def test_blank_category_finds_nothing(menus, category):
    await menus.create_menu("Ketoprak", "ketoprak")

    assert await menus.find_available(category) == []


async def test_create_menu_validates_and_normalizes(menus):
    menu = await menus.create_menu("  Es Cendol ", "  Minuman Dingin ", price=-10)

    assert menu.id
    assert menu.name == "Es Cendol"
    assert menu.category == "minuman dingin"
    assert menu.price == 0
    with pytest.raises(ValidationError):
        await menus.create_menu("", "minuman")
    with pytest.raises(ValidationError):
        await menus.create_menu("Es Teler", " ")


async def test_set_availability_unknown_menu(menus):
    with pytest.raises(NotFoundError) as exc_info:
        await menus.set_availability("missing", True)
    assert exc_info.value.code == "MENU_NOT_FOUND"


def test_category_mapping_trims_and_lowercases(menus):
    assert menus.map_category_from_text("  Nasi PADANG\t") == "nasi padang"


def test_rank_menus_is_stable_for_ties():
    first = MenuItem(name="A", price=10000, rating=4.2)
    second = MenuItem(name="B", price=10000, rating=4.2)

    assert [m.name for m in rank_menus([first, second])] == ["A", "B"]


def test_menu_display_helpers():
    menu = MenuItem(name="Soto Ayam", price=15000, vendor="", eta_minutes=20, rating=4.25)

    assert menu.price_text() == "Rp 15.000"
    assert menu.vendor_or_dash() == "-"
    assert menu.seller_or_dash() == "-"
    assert menu.eta_text() == "ETA 20 min"
    assert menu.rating_text() == "★ 4.2"
    assert menu.subtitle() == "Rp 15.000 • - • ETA 20 min • ★ 4.2"
    assert MenuItem(name="x").eta_text() == "ETA -"
    assert MenuItem(name="x").rating_text() == "★ -"
