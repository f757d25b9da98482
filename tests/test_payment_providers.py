import json
from urllib.parse import parse_qs, urlparse

import pytest

from conftest import BUYER_ID, LISTING_ID, RAZORPAY_KEY_SECRET, SELLER_ID, STRANGER_ID, USD_LISTING_ID
from bazaar.core.exceptions import BadRequestError, ProviderError
from bazaar.core.security import razorpay_payment_signature
from bazaar.models.order import CashfreeRef, OrderDraft, ProviderKind, RazorpayRef, UpiRef
from bazaar.payments.base import PaymentEvidence, PaymentOutcome
from bazaar.payments.razorpay_provider import RazorpayProvider
from bazaar.payments.registry import build_registry
from bazaar.core.config import Settings

ORDER_ID = "65c0000000000000000000aa"


def _draft(provider: ProviderKind, seller_id: str = SELLER_ID, currency: str = "INR") -> OrderDraft:
    return OrderDraft(
        id=ORDER_ID,
        buyer_id=BUYER_ID,
        seller_id=seller_id,
        listing_id=LISTING_ID,
        amount=50000,
        currency=currency,
        provider=provider,
    )


async def test_upi_deep_link_encodes_payee_amount_and_reference(providers, buyer, catalog):
    listing = await catalog.get_listing(LISTING_ID)
    handle = await providers.get("upi").create_provider_order(_draft(ProviderKind.UPI), buyer, listing)
    assert isinstance(handle.ref, UpiRef)
    assert handle.ref.reference == f"BZR{ORDER_ID}".upper()
    link = urlparse(handle.checkout["deep_link"])
    assert link.scheme == "upi"
    params = parse_qs(link.query)
    assert params["pa"] == ["ravi@okbank"]  # seller's own handle
    assert params["pn"] == ["Ravi Seller"]
    assert params["am"] == ["500.00"]
    assert params["cu"] == ["INR"]
    assert params["tr"] == [handle.ref.reference]
    assert params["tn"] == ["Road bike"]


async def test_upi_falls_back_to_merchant_handle(providers, buyer, catalog):
    listing = await catalog.get_listing(LISTING_ID)
    # stranger has no upi_handle on file
    handle = await providers.get("upi").create_provider_order(
        _draft(ProviderKind.UPI, seller_id=STRANGER_ID), buyer, listing
    )
    assert handle.checkout["payee"] == "bazaar@upi"


async def test_upi_rejects_non_inr(providers, buyer, catalog):
    listing = await catalog.get_listing(USD_LISTING_ID)
    with pytest.raises(BadRequestError):
        await providers.get("upi").create_provider_order(_draft(ProviderKind.UPI, currency="USD"), buyer, listing)


async def test_upi_verification_is_always_indeterminate(providers):
    order = _draft(ProviderKind.UPI).to_order(UpiRef(reference="BZR1"))
    result = await providers.get("upi").verify_payment(order, PaymentEvidence(utr=" 412345678901 "))
    assert result.outcome == PaymentOutcome.INDETERMINATE
    assert result.payment_id == "412345678901"
    result = await providers.get("upi").verify_payment(order, PaymentEvidence())
    assert result.outcome == PaymentOutcome.INDETERMINATE
    assert result.payment_id is None


async def test_razorpay_creates_remote_order_in_paise(providers, buyer, catalog, razorpay_client):
    listing = await catalog.get_listing(LISTING_ID)
    handle = await providers.get("razorpay").create_provider_order(_draft(ProviderKind.RAZORPAY), buyer, listing)
    assert razorpay_client.order.calls[0]["amount"] == 50000
    assert razorpay_client.order.calls[0]["receipt"] == ORDER_ID
    assert handle.ref == RazorpayRef(order_id="order_RZP0001")
    assert handle.checkout == {"order_id": "order_RZP0001", "amount": 50000, "currency": "INR", "key_id": "rzp_test_key"}


async def test_razorpay_upstream_failure_is_provider_error(providers, buyer, catalog, razorpay_client):
    razorpay_client.order.error = RuntimeError("gateway timeout")
    listing = await catalog.get_listing(LISTING_ID)
    with pytest.raises(ProviderError) as exc:
        await providers.get("razorpay").create_provider_order(_draft(ProviderKind.RAZORPAY), buyer, listing)
    assert "gateway timeout" in exc.value.detail
    assert "gateway timeout" not in exc.value.message


async def test_razorpay_verify_uses_stored_order_id(providers):
    order = _draft(ProviderKind.RAZORPAY).to_order(RazorpayRef(order_id="order_RZP0001"))
    good = razorpay_payment_signature("order_RZP0001", "pay_1", RAZORPAY_KEY_SECRET)
    result = await providers.get("razorpay").verify_payment(
        order, PaymentEvidence(razorpay_payment_id="pay_1", razorpay_signature=good)
    )
    assert result.outcome == PaymentOutcome.CONFIRMED
    assert result.payment_id == "pay_1"

    forged = razorpay_payment_signature("order_OTHER", "pay_1", RAZORPAY_KEY_SECRET)
    result = await providers.get("razorpay").verify_payment(
        order, PaymentEvidence(razorpay_payment_id="pay_1", razorpay_signature=forged)
    )
    assert result.outcome == PaymentOutcome.REJECTED


async def test_razorpay_verify_requires_evidence(providers):
    order = _draft(ProviderKind.RAZORPAY).to_order(RazorpayRef(order_id="order_RZP0001"))
    with pytest.raises(BadRequestError):
        await providers.get("razorpay").verify_payment(order, PaymentEvidence(razorpay_payment_id="pay_1"))


async def test_cashfree_create_sends_major_units_and_credentials(providers, buyer, catalog, cashfree_api):
    listing = await catalog.get_listing(LISTING_ID)
    handle = await providers.get("cashfree").create_provider_order(_draft(ProviderKind.CASHFREE), buyer, listing)
    request = cashfree_api.requests[0]
    assert request.url == "https://cashfree.test/pg/orders"
    assert request.headers["x-client-id"] == "cf_app"
    assert request.headers["x-client-secret"] == "cf_secret"
    assert request.headers["x-api-version"] == "2023-08-01"
    body = json.loads(request.content)
    assert body["order_amount"] == 500.0
    assert body["order_currency"] == "INR"
    assert body["customer_details"]["customer_phone"] == "9876543210"
    assert handle.ref == CashfreeRef(order_id=f"order_{ORDER_ID}")
    assert handle.checkout["payment_session_id"] == f"session_order_{ORDER_ID}"


async def test_cashfree_create_failure_is_provider_error(providers, buyer, catalog, cashfree_api):
    cashfree_api.create_status_code = 500
    listing = await catalog.get_listing(LISTING_ID)
    with pytest.raises(ProviderError) as exc:
        await providers.get("cashfree").create_provider_order(_draft(ProviderKind.CASHFREE), buyer, listing)
    assert "upstream exploded" in exc.value.detail


@pytest.mark.parametrize(
    "order_status,outcome",
    [
        ("PAID", PaymentOutcome.CONFIRMED),
        ("ACTIVE", PaymentOutcome.REJECTED),
        ("EXPIRED", PaymentOutcome.REJECTED),
        ("paid", PaymentOutcome.REJECTED),
    ],
)
async def test_cashfree_verify_maps_order_status(providers, cashfree_api, order_status, outcome):
    cashfree_api.order_status = order_status
    order = _draft(ProviderKind.CASHFREE).to_order(CashfreeRef(order_id="order_cf1"))
    result = await providers.get("cashfree").verify_payment(order, PaymentEvidence())
    assert result.outcome == outcome
    assert cashfree_api.requests[-1].url.path == "/pg/orders/order_cf1"


async def test_cashfree_lookup_failure_is_provider_error(providers, cashfree_api):
    cashfree_api.status_code = 404
    order = _draft(ProviderKind.CASHFREE).to_order(CashfreeRef(order_id="order_cf1"))
    with pytest.raises(ProviderError):
        await providers.get("cashfree").verify_payment(order, PaymentEvidence())


async def test_unconfigured_provider_is_rejected_on_use():
    registry = build_registry(Settings(razorpay_key_id="", razorpay_key_secret="", upi_payee_vpa="me@upi"))
    assert registry.get("upi").kind == ProviderKind.UPI
    with pytest.raises(BadRequestError):
        registry.get("razorpay")
    with pytest.raises(BadRequestError):
        registry.get("paypal")


async def test_razorpay_provider_requires_credentials():
    with pytest.raises(BadRequestError):
        RazorpayProvider("", "")
