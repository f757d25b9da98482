"""Provider webhooks: verify HMAC over the raw body, map events, feed the lifecycle."""

import json
from dataclasses import dataclass

from bazaar.core.config import Settings
from bazaar.core.exceptions import BadRequestError, SignatureError
from bazaar.core.logging import get_logger
from bazaar.core.security import verify_webhook_signature
from bazaar.models.order import OrderStatus, ProviderKind
from bazaar.services.orders import NOT_FOUND, OrderLifecycle

log = get_logger(__name__)

SIGNATURE_HEADERS = {
    ProviderKind.RAZORPAY: "x-razorpay-signature",
    ProviderKind.CASHFREE: "x-webhook-signature",
}


@dataclass
class ProviderEvent:
    name: str
    reference: str  # provider order id
    target: OrderStatus
    payment_id: str | None = None


RAZORPAY_PAYMENT_EVENTS = {
    "payment.authorized": OrderStatus.PAID,
    "payment.captured": OrderStatus.PAID,
    "payment.failed": OrderStatus.FAILED,
}

CASHFREE_EVENTS = {
    "PAYMENT_SUCCESS": OrderStatus.PAID,
    "PAYMENT_FAILED": OrderStatus.FAILED,
    "PAYMENT_USER_DROPPED": OrderStatus.FAILED,
}


def parse_razorpay_event(data: dict) -> ProviderEvent | None:
    name = data.get("event") or ""
    payload = data.get("payload") or {}
    if name in RAZORPAY_PAYMENT_EVENTS:
        payment = (payload.get("payment") or {}).get("entity") or {}
        order_id = payment.get("order_id")
        if not order_id:
            return None
        return ProviderEvent(name, order_id, RAZORPAY_PAYMENT_EVENTS[name], payment.get("id"))
    if name == "order.paid":
        order = (payload.get("order") or {}).get("entity") or {}
        payment = (payload.get("payment") or {}).get("entity") or {}
        if not order.get("id"):
            return None
        return ProviderEvent(name, order["id"], OrderStatus.PAID, payment.get("id"))
    return None


def parse_cashfree_event(data: dict) -> ProviderEvent | None:
    name = data.get("type") or ""
    # 2023-08-01 payloads use PAYMENT_SUCCESS_WEBHOOK; older ones drop the suffix
    key = name[: -len("_WEBHOOK")] if name.endswith("_WEBHOOK") else name
    if key not in CASHFREE_EVENTS:
        return None
    body = data.get("data") or {}
    order_id = (body.get("order") or {}).get("order_id")
    if not order_id:
        return None
    payment_id = (body.get("payment") or {}).get("cf_payment_id")
    return ProviderEvent(name, order_id, CASHFREE_EVENTS[key], str(payment_id) if payment_id is not None else None)


PARSERS = {
    ProviderKind.RAZORPAY: parse_razorpay_event,
    ProviderKind.CASHFREE: parse_cashfree_event,
}


def webhook_secret(settings: Settings, provider: ProviderKind) -> str:
    if provider == ProviderKind.RAZORPAY:
        return settings.razorpay_webhook_secret
    return settings.cashfree_webhook_secret


async def handle_webhook(
    lifecycle: OrderLifecycle,
    settings: Settings,
    provider: ProviderKind,
    payload: bytes,
    signature: str | None,
) -> dict:
    """Verify, parse and apply one delivery.

    Signature problems raise SignatureError (400) before anything is read.
    Unknown events and unknown orders are acknowledged so the provider stops
    retrying; store failures propagate as 500 so it retries.
    """
    secret = webhook_secret(settings, provider)
    if not secret:
        log.error("webhook_secret_missing", provider=provider.value)
        raise SignatureError("Webhook secret not configured")
    if not signature:
        raise SignatureError("Missing signature")
    if not verify_webhook_signature(payload, signature, secret):
        log.warning("webhook_signature_invalid", provider=provider.value)
        raise SignatureError("Invalid signature")

    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise BadRequestError("Malformed webhook body") from e
    if not isinstance(data, dict):
        raise BadRequestError("Malformed webhook body")

    event = PARSERS[provider](data)
    if event is None:
        log.info("webhook_ignored", provider=provider.value, webhook_event=data.get("event") or data.get("type"))
        return {"status": "ignored"}

    result = await lifecycle.apply_provider_event(
        provider,
        event.reference,
        event.target,
        payment_id=event.payment_id,
        event=event.name,
    )
    if result == NOT_FOUND:
        return {"status": "ignored"}
    return {"status": "ok", "result": result}
