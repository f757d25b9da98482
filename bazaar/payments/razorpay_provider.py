"""Razorpay orders and checkout signature verification."""

from starlette.concurrency import run_in_threadpool

from bazaar.core.exceptions import BadRequestError, ProviderError
from bazaar.core.logging import get_logger
from bazaar.core.security import verify_razorpay_payment_signature
from bazaar.models.catalog import Listing, User
from bazaar.models.order import Order, OrderDraft, ProviderKind, RazorpayRef
from bazaar.payments.base import PaymentEvidence, PaymentOutcome, PaymentProvider, ProviderHandle, Verification

log = get_logger(__name__)


class RazorpayProvider(PaymentProvider):
    kind = ProviderKind.RAZORPAY

    def __init__(self, key_id: str, key_secret: str, client=None) -> None:
        if not key_id or not key_secret:
            raise BadRequestError("Payments not configured", details={"provider": self.kind.value})
        self.key_id = key_id
        self.key_secret = key_secret
        self._client = client

    @property
    def client(self):
        if self._client is None:
            import razorpay
            self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
        return self._client

    async def create_provider_order(self, order: OrderDraft, buyer: User, listing: Listing) -> ProviderHandle:
        payload = {
            "amount": order.amount,  # paise
            "currency": order.currency,
            "receipt": order.id,
            "notes": {"listing_id": order.listing_id, "buyer_id": order.buyer_id},
        }
        try:
            remote = await run_in_threadpool(self.client.order.create, payload)
        except Exception as e:
            raise ProviderError(self.kind.value, f"order.create failed: {e}") from e
        remote_id = remote.get("id") if isinstance(remote, dict) else None
        if not remote_id:
            raise ProviderError(self.kind.value, f"order.create returned no id: {remote!r}")
        return ProviderHandle(
            ref=RazorpayRef(order_id=remote_id),
            checkout={
                "order_id": remote_id,
                "amount": remote.get("amount", order.amount),
                "currency": remote.get("currency", order.currency),
                "key_id": self.key_id,
            },
        )

    async def verify_payment(self, order: Order, evidence: PaymentEvidence) -> Verification:
        payment_id = (evidence.razorpay_payment_id or "").strip()
        signature = (evidence.razorpay_signature or "").strip()
        if not payment_id or not signature:
            raise BadRequestError("razorpay_payment_id and razorpay_signature are required")
        # Signed over the order id we stored, never one the client sends back
        ok = verify_razorpay_payment_signature(order.provider_ref.external_id, payment_id, signature, self.key_secret)
        if not ok:
            log.warning("razorpay_signature_mismatch", order_id=order.id, payment_id=payment_id)
            return Verification(outcome=PaymentOutcome.REJECTED, payment_id=payment_id, reason="signature mismatch")
        return Verification(outcome=PaymentOutcome.CONFIRMED, payment_id=payment_id, reason="signature verified")
