import asyncio

import pytest

from app.core.errors import AlreadyBoughtError, NotFoundError, ValidationError
from app.core.store import Query
from app.models.order import OrderStatus
from app.models.request import RequestStatus


@pytest.fixture
async def claimed_request(requests_service, offers):
    await requests_service.create_request("req_3", "ayam geprek")
    await offers.save_row("req_3", 0, "Ayam Geprek Level 1", vendor="Geprek Bensu", price=15000, score=4.1)
    await offers.save_row("req_3", 1, "Ayam Geprek Keju", vendor="Geprek Bensu", price=21000, score=4.7)
    claimed = await requests_service.claim_oldest_open()
    assert claimed.request_id == "req_3"
    return claimed


async def orders_in_store(store):
    return await store.query(Query("orders"))


async def test_buy_row_writes_order_status_and_flag(purchases, store, claimed_request):
    order = await purchases.buy_row("req_3", 1, buyer_name="Sari", buyer_address="Jl. Kenanga 7")

    assert order.order_id.startswith("ord_")
    assert order.status == OrderStatus.PAID
    assert order.menu == "Ayam Geprek Keju"
    assert order.price == 21000
    assert order.score == 4.7

    request = await store.get("requests/req_3")
    assert request.get("status") == "BOUGHT"
    assert request.get("boughtRowIndex") == 1
    assert request.get("boughtOrderId") == order.order_id
    assert (await store.get("requests/req_3/rows/1")).get("isBought") is True
    assert (await store.get("requests/req_3/rows/0")).get("isBought") is False

    saved = await purchases.get_order(order.order_id)
    assert saved.buyer_name == "Sari"
    assert saved.buyer_address == "Jl. Kenanga 7"


async def test_second_buy_is_rejected_without_new_order(purchases, store, claimed_request):
    first = await purchases.buy_row("req_3", 1)

    with pytest.raises(AlreadyBoughtError) as exc_info:
        await purchases.buy_row("req_3", 0)

    assert exc_info.value.code == "ALREADY_BOUGHT"
    orders = await orders_in_store(store)
    assert [doc.id for doc in orders] == [first.order_id]
    assert (await store.get("requests/req_3")).get("boughtRowIndex") == 1
    assert (await store.get("requests/req_3/rows/0")).get("isBought") is False


async def test_concurrent_buys_produce_one_order(purchases, store, claimed_request):
    results = await asyncio.gather(
        purchases.buy_row("req_3", 0),
        purchases.buy_row("req_3", 1),
        purchases.buy_row("req_3", 1),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    assert len(winners) == 1
    assert all(isinstance(r, AlreadyBoughtError) for r in results if isinstance(r, Exception))
    assert len(await orders_in_store(store)) == 1
    assert (await store.get("requests/req_3")).get("boughtOrderId") == winners[0].order_id


async def test_missing_row_leaves_request_untouched(purchases, store, claimed_request):
    with pytest.raises(NotFoundError) as exc_info:
        await purchases.buy_row("req_3", 2)

    assert exc_info.value.code == "ROW_NOT_FOUND"
    assert (await store.get("requests/req_3")).get("status") == "CLAIMED"
    assert await orders_in_store(store) == []


@pytest.mark.parametrize("row_index", [-1, 3, "1"])
async def test_row_index_out_of_range(purchases, row_index):
    with pytest.raises(ValidationError):
        await purchases.buy_row("req_3", row_index)


async def test_buy_unknown_request(purchases):
    with pytest.raises(NotFoundError) as exc_info:
        await purchases.buy_row("nope", 0)
    assert exc_info.value.code == "REQUEST_NOT_FOUND"


async def test_buy_offer_completes_conversation(requests_service, offers, purchases, store):
    await requests_service.create_conversation("req_chat", "buyer_1", "Bakso")
    offer = await offers.submit_offer("req_chat", "seller_1", "Bakso Urat", price=22000, vendor="Pak Min")

    order = await purchases.buy_offer("req_chat", offer.id, buyer_name="Dewi", buyer_address="Jl. Melati 3")

    assert order.offer_id == offer.id
    assert order.seller_id == "seller_1"
    request = await requests_service.get_request("req_chat")
    assert request.status == RequestStatus.COMPLETED
    assert request.selected_offer_id == offer.id
    assert request.bought_order_id == order.order_id
    assert request.address == "Jl. Melati 3"
    assert (await store.get(f"requests/req_chat/offers/{offer.id}")).get("isBought") is True

    with pytest.raises(AlreadyBoughtError):
        await purchases.buy_offer("req_chat", offer.id)
    with pytest.raises(AlreadyBoughtError):
        await offers.submit_offer("req_chat", "seller_2", "Bakso Telur")


async def test_buy_offer_unknown_offer(requests_service, purchases, store):
    await requests_service.create_conversation("req_chat", "buyer_1", "Bakso")

    with pytest.raises(NotFoundError) as exc_info:
        await purchases.buy_offer("req_chat", "missing_offer")

    assert exc_info.value.code == "OFFER_NOT_FOUND"
    assert (await store.get("requests/req_chat")).get("status") == "OPEN"


async def test_manual_order_does_not_touch_request(requests_service, purchases, store):
    await requests_service.create_request("req_manual", "soto")

    order = await purchases.create_order("req_manual", "Soto Betawi", vendor="Bang Udin", price=28000)

    assert order.order_id.startswith("order_")
    assert order.status == OrderStatus.NEW_ORDER
    assert order.row_index == -1
    assert (await store.get("requests/req_manual")).get("status") == "NEW"
    assert [o.order_id for o in await purchases.list_orders("req_manual")] == [order.order_id]

    with pytest.raises(ValidationError):
        await purchases.create_order("req_manual", "  ")


async def test_get_order_not_found(purchases):
    with pytest.raises(NotFoundError):
        await purchases.get_order("ord_missing")


async def test_concurrent_offer_buys_produce_one_order(requests_service, offers, purchases, store):
    await requests_service.create_conversation("req_race", "buyer_1", "Bakso")
    offered = [
        await offers.submit_offer("req_race", f"seller_{i}", name, price=20000)
        for i, name in enumerate(("Bakso Urat", "Bakso Telur", "Bakso Mercon"))
    ]

    results = await asyncio.gather(
        *[purchases.buy_offer("req_race", offer.id) for offer in offered + offered[:1]],
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 3
    assert all(isinstance(r, AlreadyBoughtError) for r in losers)

    order = winners[0]
    assert [doc.id for doc in await orders_in_store(store)] == [order.order_id]
    request = await store.get("requests/req_race")
    assert request.get("status") == "COMPLETED"
    assert request.get("selectedOfferId") == order.offer_id
    assert request.get("boughtOrderId") == order.order_id
    bought = [o.id for o in await offers.list_offers("req_race") if o.is_bought]
    assert bought == [order.offer_id]
