import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import (
    AlreadyBoughtError,
    DocumentExistsError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.core.store import Query
from app.models.request import RequestStatus, ensure_transition

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


async def seed_new_request(store, request_id, seconds, status="NEW"):
    await store.set(
        f"requests/{request_id}",
        {
            "requestId": request_id,
            "text": f"text {request_id}",
            "category": f"text {request_id}",
            "status": status,
            "createdAt": BASE_TIME + timedelta(seconds=seconds),
        },
    )


async def test_create_request_normalizes_category(requests_service, store):
    request = await requests_service.create_request("req_1", "  Nasi Padang ")

    assert request.category == "nasi padang"
    doc = await store.get("requests/req_1")
    assert doc.get("status") == "NEW"
    assert doc.get("text") == "Nasi Padang"
    assert doc.get("category") == "nasi padang"
    assert doc.get("createdAt") is not None


@pytest.mark.parametrize("request_id,text", [("", "nasi padang"), ("req_1", "   "), (None, "x")])
async def test_create_request_rejects_blank_input(requests_service, store, request_id, text):
    with pytest.raises(ValidationError):
        await requests_service.create_request(request_id, text)
    assert await store.query(Query("requests")) == []


async def test_create_request_cannot_reset_bought_request(requests_service, store):
    await seed_new_request(store, "req_1", 0, status="BOUGHT")

    with pytest.raises(DocumentExistsError):
        await requests_service.create_request("req_1", "sate")
    assert (await store.get("requests/req_1")).get("status") == "BOUGHT"


async def test_claim_returns_none_without_new_requests(requests_service, store):
    await seed_new_request(store, "req_done", 0, status="CLAIMED")

    assert await requests_service.claim_oldest_open() is None


async def test_claim_takes_newest_of_oldest_batch(requests_service, store):
    for i in range(25):
        await seed_new_request(store, f"req_{i:02d}", i)

    claimed = await requests_service.claim_oldest_open(batch_size=20)

    assert claimed.request_id == "req_19"
    assert claimed.text == "text req_19"
    assert (await store.get("requests/req_19")).get("status") == "CLAIMED"
    assert (await store.get("requests/req_24")).get("status") == "NEW"


async def test_concurrent_claims_take_a_request_once(requests_service, store):
    await seed_new_request(store, "req_only", 0)

    results = await asyncio.gather(*[requests_service.claim_oldest_open() for _ in range(8)])

    winners = [r for r in results if r is not None]
    assert len(winners) == 1
    assert winners[0].request_id == "req_only"


async def test_concurrent_claims_spread_over_requests(requests_service, store):
    for i in range(3):
        await seed_new_request(store, f"req_{i}", i)

    results = await asyncio.gather(*[requests_service.claim_oldest_open() for _ in range(6)])

    claimed = [r.request_id for r in results if r is not None]
    assert sorted(claimed) == ["req_0", "req_1", "req_2"]


async def test_conversation_tracks_latest_buyer_message(requests_service, store):
    request = await requests_service.create_conversation("req_chat", "buyer_1", "Sate", buyer_request_no=-4)
    assert request.status == RequestStatus.OPEN
    assert request.buyer_request_no == 0

    await requests_service.send_seller_message("req_chat", "seller_1", "Which sate?")
    follow_up = await requests_service.send_buyer_message("req_chat", "buyer_1", "Sate Kambing")

    question = await requests_service.current_question("req_chat")
    assert question.id == follow_up.id
    assert question.text == "Sate Kambing"

    doc = await store.get("requests/req_chat")
    assert doc.get("latestBuyerMessageId") == follow_up.id
    assert doc.get("latestBuyerText") == "Sate Kambing"
    assert doc.get("category") == "sate kambing"

    messages = await requests_service.list_messages("req_chat")
    assert [m.sender_type for m in messages] == ["BUYER", "SELLER", "BUYER"]


async def test_messages_need_an_existing_request(requests_service):
    with pytest.raises(NotFoundError) as exc_info:
        await requests_service.send_buyer_message("missing", "buyer_1", "hello")
    assert exc_info.value.code == "REQUEST_NOT_FOUND"

    with pytest.raises(ValidationError):
        await requests_service.send_seller_message("missing", "seller_1", "  ")


async def test_mark_completed_is_idempotent_for_same_offer(requests_service, store):
    await requests_service.create_conversation("req_done", "buyer_1", "sate")

    first = await requests_service.mark_completed("req_done", "offer_1", "Budi", "Jl. Merdeka 1")
    again = await requests_service.mark_completed("req_done", "offer_1", "Budi", "Jl. Merdeka 1")

    assert first.status == again.status == RequestStatus.COMPLETED
    assert again.selected_offer_id == "offer_1"
    with pytest.raises(AlreadyBoughtError):
        await requests_service.mark_completed("req_done", "offer_2")
    assert (await store.get("requests/req_done")).get("selectedOfferId") == "offer_1"


async def test_delete_request_cascades_but_keeps_orders(requests_service, store):
    await requests_service.create_conversation("req_gone", "buyer_1", "sate")
    await store.set("requests/req_gone/rows/0", {"rowIndex": 0, "content": "Sate"})
    await store.set("orders/ord_1", {"requestId": "req_gone"})

    removed = await requests_service.delete_request("req_gone")

    assert removed == 2
    assert await store.get("requests/req_gone") is None
    assert await store.query(Query("requests/req_gone/messages")) == []
    assert await store.get("orders/ord_1") is not None


def test_transitions_only_move_forward():
    ensure_transition("NEW", "CLAIMED")
    ensure_transition("CLAIMED", "BOUGHT")
    ensure_transition("OPEN", "COMPLETED")
    with pytest.raises(InvalidTransitionError):
        ensure_transition("CLAIMED", "CLAIMED")
    with pytest.raises(InvalidTransitionError):
        ensure_transition("CLAIMED", "NEW")
    with pytest.raises(AlreadyBoughtError):
        ensure_transition("BOUGHT", "COMPLETED")
    with pytest.raises(AlreadyBoughtError):
        ensure_transition("COMPLETED", "CLAIMED")
