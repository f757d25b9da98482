"""Cashfree PG orders over the REST API (x-api-version 2023-08-01)."""

import httpx

from bazaar.core.exceptions import BadRequestError, ProviderError
from bazaar.core.logging import get_logger
from bazaar.models.catalog import Listing, User
from bazaar.models.order import CashfreeRef, Order, OrderDraft, ProviderKind
from bazaar.payments.base import PaymentEvidence, PaymentOutcome, PaymentProvider, ProviderHandle, Verification

log = get_logger(__name__)

PAID = "PAID"


def cashfree_order_id(order_id: str) -> str:
    return f"order_{order_id}"


class CashfreeProvider(PaymentProvider):
    kind = ProviderKind.CASHFREE

    def __init__(
        self,
        app_id: str,
        secret_key: str,
        base_url: str = "https://api.cashfree.com/pg",
        api_version: str = "2023-08-01",
        public_base_url: str = "",
        default_phone: str = "9999999999",
        http: httpx.AsyncClient | None = None,
    ) -> None:
        if not app_id or not secret_key:
            raise BadRequestError("Payments not configured", details={"provider": self.kind.value})
        self.app_id = app_id
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.public_base_url = public_base_url.rstrip("/")
        self.default_phone = default_phone
        self._http = http

    def _headers(self) -> dict[str, str]:
        return {
            "x-client-id": self.app_id,
            "x-client-secret": self.secret_key,
            "x-api-version": self.api_version,
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        try:
            if self._http is not None:
                r = await self._http.request(method, url, headers=self._headers(), json=json)
            else:
                async with httpx.AsyncClient(timeout=25) as client:
                    r = await client.request(method, url, headers=self._headers(), json=json)
        except httpx.HTTPError as e:
            raise ProviderError(self.kind.value, f"{method} {path}: {e}") from e
        try:
            body = r.json() if r.content else {}
        except ValueError:
            body = {}
        if r.status_code < 200 or r.status_code >= 300:
            msg = (body.get("message") if isinstance(body, dict) else None) or f"HTTP {r.status_code}"
            raise ProviderError(self.kind.value, f"{method} {path}: {msg}")
        return body if isinstance(body, dict) else {}

    async def create_provider_order(self, order: OrderDraft, buyer: User, listing: Listing) -> ProviderHandle:
        cf_order_id = cashfree_order_id(order.id)
        payload = {
            "order_id": cf_order_id,
            "order_amount": float(order.amount_major),
            "order_currency": order.currency,
            "customer_details": {
                "customer_id": buyer.id,
                "customer_name": buyer.name or "Customer",
                "customer_email": buyer.email,
                "customer_phone": buyer.phone or self.default_phone,
            },
            "order_note": f"Payment for {listing.title}"[:200],
        }
        if self.public_base_url:
            payload["order_meta"] = {
                "return_url": f"{self.public_base_url}/payment/success?order_id={cf_order_id}",
                "notify_url": f"{self.public_base_url}/v1/webhooks/cashfree",
            }
        remote = await self._request("POST", "/orders", json=payload)
        return ProviderHandle(
            ref=CashfreeRef(order_id=remote.get("order_id") or cf_order_id),
            checkout={
                "order_id": remote.get("order_id") or cf_order_id,
                "payment_session_id": remote.get("payment_session_id"),
                "order_status": remote.get("order_status"),
            },
        )

    async def fetch_order_status(self, cf_order_id: str) -> dict:
        return await self._request("GET", f"/orders/{cf_order_id}")

    async def verify_payment(self, order: Order, evidence: PaymentEvidence) -> Verification:
        cf_order_id = order.provider_ref.external_id
        remote = await self.fetch_order_status(cf_order_id)
        order_status = remote.get("order_status")
        payment_id = str(remote.get("cf_order_id") or cf_order_id)
        if order_status == PAID:
            return Verification(outcome=PaymentOutcome.CONFIRMED, payment_id=payment_id, reason="order_status PAID")
        log.info("cashfree_not_paid", order_id=order.id, order_status=order_status)
        return Verification(outcome=PaymentOutcome.REJECTED, payment_id=payment_id, reason=f"order_status {order_status}")
