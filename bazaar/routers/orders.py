from fastapi import APIRouter, Depends
from pydantic import BaseModel

from bazaar.deps import get_current_user, get_lifecycle, limit_order_creation
from bazaar.models.catalog import User
from bazaar.models.order import ProviderKind
from bazaar.payments.base import PaymentEvidence
from bazaar.services.orders import OrderLifecycle

router = APIRouter()


class CreateOrderRequest(BaseModel):
    listing_id: str
    provider: ProviderKind | None = None  # defaults to DEFAULT_PAYMENT_PROVIDER


class ConfirmPaymentRequest(BaseModel):
    razorpay_payment_id: str | None = None
    razorpay_signature: str | None = None
    utr: str | None = None


class VerifyPaymentRequest(BaseModel):
    approve: bool


@router.post("")
async def create_order(
    body: CreateOrderRequest,
    user: User = Depends(limit_order_creation),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    """Create an order and its provider artifact; `checkout` is what the client pays with."""
    created = await lifecycle.create_order(user, body.listing_id, body.provider)
    return {
        "order": created.order.public_dict(),
        "checkout": created.checkout,
        "listing": {"title": created.listing.title, "price": created.listing.price} if created.listing else None,
    }


@router.get("/pending-verification")
async def pending_verification(
    user: User = Depends(get_current_user),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    """Seller queue: UPI orders the buyer says are paid, newest first."""
    return {"orders": await lifecycle.list_pending_verification(user)}


@router.get("/{order_id}/status")
async def order_status(
    order_id: str,
    user: User = Depends(get_current_user),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return {"order": await lifecycle.order_status(user, order_id)}


@router.post("/{order_id}/upi-intent")
async def upi_intent(
    order_id: str,
    user: User = Depends(get_current_user),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    """Return the UPI deep link and mark the order pending."""
    order, checkout = await lifecycle.start_upi(user, order_id)
    return {"order": order.public_dict(), "checkout": checkout}


@router.post("/{order_id}/confirm")
async def confirm_payment(
    order_id: str,
    body: ConfirmPaymentRequest | None = None,
    user: User = Depends(get_current_user),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    body = body or ConfirmPaymentRequest()
    evidence = PaymentEvidence(
        razorpay_payment_id=body.razorpay_payment_id,
        razorpay_signature=body.razorpay_signature,
        utr=body.utr,
    )
    order = await lifecycle.confirm_payment(user, order_id, evidence)
    return {"order": order.public_dict()}


@router.post("/{order_id}/verify")
async def verify_payment(
    order_id: str,
    body: VerifyPaymentRequest,
    user: User = Depends(get_current_user),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    """Seller approves or rejects a verification_pending order."""
    order = await lifecycle.seller_verify(user, order_id, body.approve)
    return {"order": order.public_dict()}
