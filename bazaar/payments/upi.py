"""UPI deep links.

UPI is a peer-to-peer bank transfer. Nothing in this system can observe it,
so verify_payment never confirms or rejects: the order goes to
verification_pending and the seller checks their bank account. That trust
boundary is deliberate; do not replace it with guesses.
"""

from urllib.parse import quote, urlencode

from bazaar.core.exceptions import BadRequestError
from bazaar.models.catalog import Listing, User
from bazaar.models.order import Order, OrderDraft, ProviderKind, UpiRef
from bazaar.payments.base import PaymentEvidence, PaymentOutcome, PaymentProvider, ProviderHandle, Verification

UPI_CURRENCY = "INR"
REFERENCE_PREFIX = "BZR"


def upi_reference(order_id: str) -> str:
    # tr is capped at 35 chars by most PSP apps; 3 + 24 fits
    return f"{REFERENCE_PREFIX}{order_id}".upper()


def build_upi_link(payee: str, payee_name: str, amount: str, currency: str, reference: str, note: str) -> str:
    params = {
        "pa": payee,
        "pn": payee_name,
        "am": amount,
        "cu": currency,
        "tr": reference,
        "tn": note[:50],
    }
    return "upi://pay?" + urlencode(params, quote_via=quote)


class UpiProvider(PaymentProvider):
    kind = ProviderKind.UPI

    def __init__(self, merchant_vpa: str = "", merchant_name: str = "Bazaar", catalog=None) -> None:
        self.merchant_vpa = merchant_vpa
        self.merchant_name = merchant_name
        self.catalog = catalog

    async def _payee(self, seller_id: str) -> tuple[str, str]:
        """Seller's own handle when on file, else the merchant handle."""
        if self.catalog is not None:
            seller = await self.catalog.get_user(seller_id)
            if seller and seller.upi_handle:
                return seller.upi_handle, seller.name or self.merchant_name
        if not self.merchant_vpa:
            raise BadRequestError("UPI payments not configured")
        return self.merchant_vpa, self.merchant_name

    async def _checkout(self, order: OrderDraft, reference: str, note: str) -> dict:
        vpa, name = await self._payee(order.seller_id)
        link = build_upi_link(
            payee=vpa,
            payee_name=name,
            amount=str(order.amount_major),
            currency=order.currency,
            reference=reference,
            note=note,
        )
        return {"deep_link": link, "reference": reference, "payee": vpa}

    async def deep_link(self, order: Order) -> dict:
        """Rebuild the link for a persisted order (the buyer may reopen it)."""
        return await self._checkout(order, order.provider_ref.external_id, f"Order {order.id}")

    async def create_provider_order(self, order: OrderDraft, buyer: User, listing: Listing) -> ProviderHandle:
        if order.currency.upper() != UPI_CURRENCY:
            raise BadRequestError("UPI supports INR only", details={"currency": order.currency})
        reference = upi_reference(order.id)
        checkout = await self._checkout(order, reference, listing.title or f"Order {order.id}")
        return ProviderHandle(ref=UpiRef(reference=reference), checkout=checkout)

    async def verify_payment(self, order: Order, evidence: PaymentEvidence) -> Verification:
        utr = (evidence.utr or "").strip() or None
        return Verification(
            outcome=PaymentOutcome.INDETERMINATE,
            payment_id=utr,
            reason="buyer asserted UPI payment",
        )
