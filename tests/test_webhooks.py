import json

import pytest

from conftest import CASHFREE_WEBHOOK_SECRET, LISTING_ID, RAZORPAY_WEBHOOK_SECRET
from bazaar.core.security import hmac_sha256_hex
from bazaar.models.order import OrderStatus
from bazaar.services.webhooks import parse_cashfree_event, parse_razorpay_event


def razorpay_event(event: str, order_id: str, payment_id: str = "pay_W1") -> bytes:
    return json.dumps(
        {
            "event": event,
            "payload": {"payment": {"entity": {"id": payment_id, "order_id": order_id, "status": "captured"}}},
        }
    ).encode()


def cashfree_event(kind: str, order_id: str) -> bytes:
    return json.dumps(
        {
            "type": kind,
            "data": {"order": {"order_id": order_id}, "payment": {"cf_payment_id": 5550001}},
        }
    ).encode()


async def _post_razorpay(client, body: bytes, secret: str = RAZORPAY_WEBHOOK_SECRET):
    return await client.post(
        "/v1/webhooks/razorpay",
        content=body,
        headers={"X-Razorpay-Signature": hmac_sha256_hex(secret, body), "Content-Type": "application/json"},
    )


async def _razorpay_order(lifecycle, buyer):
    created = await lifecycle.create_order(buyer, LISTING_ID, "razorpay")
    return created.order


async def test_invalid_signature_is_rejected_without_mutation(client, lifecycle, buyer, order_store):
    order = await _razorpay_order(lifecycle, buyer)
    body = razorpay_event("payment.captured", order.provider_ref.external_id)
    r = await _post_razorpay(client, body, secret="wrong-secret")
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_SIGNATURE"
    assert (await order_store.get(order.id)).status == OrderStatus.CREATED
    assert await order_store.list_transitions(order.id) == []


async def test_missing_signature_is_rejected(client, lifecycle, buyer):
    order = await _razorpay_order(lifecycle, buyer)
    body = razorpay_event("payment.captured", order.provider_ref.external_id)
    r = await client.post("/v1/webhooks/razorpay", content=body)
    assert r.status_code == 400


async def test_signature_covers_the_exact_body(client, lifecycle, buyer, order_store):
    order = await _razorpay_order(lifecycle, buyer)
    body = razorpay_event("payment.captured", order.provider_ref.external_id)
    signature = hmac_sha256_hex(RAZORPAY_WEBHOOK_SECRET, body)
    reformatted = json.dumps(json.loads(body), indent=2).encode()
    r = await client.post("/v1/webhooks/razorpay", content=reformatted, headers={"X-Razorpay-Signature": signature})
    assert r.status_code == 400
    assert (await order_store.get(order.id)).status == OrderStatus.CREATED


async def test_unknown_order_is_acknowledged(client, order_store):
    r = await _post_razorpay(client, razorpay_event("payment.captured", "order_NOPE"))
    assert r.status_code == 200
    assert r.json() == {"status": "ignored"}


async def test_captured_payment_marks_order_paid(client, lifecycle, buyer, order_store):
    order = await _razorpay_order(lifecycle, buyer)
    r = await _post_razorpay(client, razorpay_event("payment.captured", order.provider_ref.external_id))
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "result": "applied"}
    stored = await order_store.get(order.id)
    assert stored.status == OrderStatus.PAID
    assert stored.provider_payment_id == "pay_W1"


async def test_replayed_delivery_is_harmless(client, lifecycle, buyer, order_store):
    order = await _razorpay_order(lifecycle, buyer)
    body = razorpay_event("payment.captured", order.provider_ref.external_id)
    assert (await _post_razorpay(client, body)).json()["result"] == "applied"
    r = await _post_razorpay(client, body)
    assert r.status_code == 200
    assert r.json()["result"] == "duplicate"
    r = await _post_razorpay(client, razorpay_event("payment.failed", order.provider_ref.external_id))
    assert r.json()["result"] == "skipped"
    assert (await order_store.get(order.id)).status == OrderStatus.PAID
    assert len(await order_store.list_transitions(order.id)) == 1


async def test_unhandled_event_type_is_ignored(client, lifecycle, buyer, order_store):
    order = await _razorpay_order(lifecycle, buyer)
    r = await _post_razorpay(client, razorpay_event("refund.created", order.provider_ref.external_id))
    assert r.status_code == 200
    assert r.json() == {"status": "ignored"}
    assert (await order_store.get(order.id)).status == OrderStatus.CREATED


async def test_malformed_body_with_valid_signature(client):
    r = await _post_razorpay(client, b"not json")
    assert r.status_code == 400
    r = await _post_razorpay(client, b"[1, 2]")
    assert r.status_code == 400


async def test_unknown_provider_is_not_found(client):
    r = await client.post("/v1/webhooks/upi", content=b"{}")
    assert r.status_code == 404
    r = await client.post("/v1/webhooks/stripe", content=b"{}")
    assert r.status_code == 404


async def test_cashfree_failure_event(client, lifecycle, buyer, order_store):
    created = await lifecycle.create_order(buyer, LISTING_ID, "cashfree")
    body = cashfree_event("PAYMENT_FAILED_WEBHOOK", created.order.provider_ref.external_id)
    r = await client.post(
        "/v1/webhooks/cashfree",
        content=body,
        headers={"x-webhook-signature": hmac_sha256_hex(CASHFREE_WEBHOOK_SECRET, body)},
    )
    assert r.status_code == 200
    stored = await order_store.get(created.order.id)
    assert stored.status == OrderStatus.FAILED
    assert stored.provider_payment_id == "5550001"


async def test_store_failure_surfaces_as_500(client, order_store, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(order_store, "find_by_provider_reference", broken)
    r = await _post_razorpay(client, razorpay_event("payment.captured", "order_ANY"))
    assert r.status_code == 500
    assert r.json()["error"]["code"] == "INTERNAL_ERROR"


def test_parse_razorpay_order_paid():
    event = parse_razorpay_event(
        {
            "event": "order.paid",
            "payload": {"order": {"entity": {"id": "order_X"}}, "payment": {"entity": {"id": "pay_X"}}},
        }
    )
    assert (event.reference, event.target, event.payment_id) == ("order_X", OrderStatus.PAID, "pay_X")
    assert parse_razorpay_event({"event": "payment.captured", "payload": {}}) is None


@pytest.mark.parametrize(
    "kind,target",
    [
        ("PAYMENT_SUCCESS_WEBHOOK", OrderStatus.PAID),
        ("PAYMENT_SUCCESS", OrderStatus.PAID),
        ("PAYMENT_USER_DROPPED_WEBHOOK", OrderStatus.FAILED),
    ],
)
def test_parse_cashfree_events(kind, target):
    event = parse_cashfree_event(json.loads(cashfree_event(kind, "order_1")))
    assert event.target == target
    assert event.reference == "order_1"


def test_parse_cashfree_ignores_other_events():
    assert parse_cashfree_event({"type": "REFUND_STATUS_WEBHOOK", "data": {}}) is None
