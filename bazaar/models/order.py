"""Order domain model, status graph and provider references."""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    CREATED = "created"
    PENDING = "pending"
    PAID = "paid"
    VERIFICATION_PENDING = "verification_pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.COMPLETED, OrderStatus.FAILED})


class Actor(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    PROVIDER = "provider"


# Edge set of the lifecycle graph, per actor allowed to drive it.
_OPEN = (OrderStatus.CREATED, OrderStatus.PENDING)

TRANSITIONS: dict[Actor, frozenset[tuple[OrderStatus, OrderStatus]]] = {
    Actor.BUYER: frozenset(
        [(OrderStatus.CREATED, OrderStatus.PENDING)]
        + [(s, OrderStatus.VERIFICATION_PENDING) for s in _OPEN]
        + [(s, OrderStatus.PAID) for s in _OPEN]
        + [(s, OrderStatus.FAILED) for s in _OPEN]
    ),
    Actor.SELLER: frozenset(
        [
            (OrderStatus.VERIFICATION_PENDING, OrderStatus.COMPLETED),
            (OrderStatus.VERIFICATION_PENDING, OrderStatus.FAILED),
        ]
    ),
    Actor.PROVIDER: frozenset(
        [(s, OrderStatus.PAID) for s in _OPEN] + [(s, OrderStatus.FAILED) for s in _OPEN]
    ),
}


def can_transition(actor: Actor, current: OrderStatus, target: OrderStatus) -> bool:
    return (current, target) in TRANSITIONS[actor]


class ProviderKind(str, Enum):
    UPI = "upi"
    RAZORPAY = "razorpay"
    CASHFREE = "cashfree"


class RazorpayRef(BaseModel):
    kind: Literal["razorpay"] = "razorpay"
    order_id: str

    @property
    def external_id(self) -> str:
        return self.order_id


class CashfreeRef(BaseModel):
    kind: Literal["cashfree"] = "cashfree"
    order_id: str

    @property
    def external_id(self) -> str:
        return self.order_id


class UpiRef(BaseModel):
    kind: Literal["upi"] = "upi"
    reference: str

    @property
    def external_id(self) -> str:
        return self.reference


ProviderRef = Annotated[Union[RazorpayRef, CashfreeRef, UpiRef], Field(discriminator="kind")]


def amount_in_minor_units(price) -> int:
    """round(price * 100), half-up. Raises ValueError for prices that are non-numeric or round below one minor unit."""
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid price: {price!r}") from e
    if not value.is_finite() or value <= 0:
        raise ValueError(f"Invalid price: {price!r}")
    minor = int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if minor < 1:
        raise ValueError(f"Price rounds to zero: {price!r}")
    return minor


class OrderDraft(BaseModel):
    """An order whose id and amount are fixed but which has no provider reference yet."""

    id: str
    buyer_id: str
    seller_id: str
    listing_id: str
    amount: int = Field(gt=0)  # minor units (paise)
    currency: str
    provider: ProviderKind

    @property
    def amount_major(self) -> Decimal:
        return (Decimal(self.amount) / 100).quantize(Decimal("0.01"))

    def to_order(self, ref) -> "Order":
        return Order(**self.model_dump(), provider_ref=ref)


class Order(OrderDraft):
    status: OrderStatus = OrderStatus.CREATED
    provider_ref: ProviderRef
    provider_payment_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _ref_matches_provider(self) -> "Order":
        if self.provider_ref.kind != self.provider:
            raise ValueError("provider_ref kind must match provider")
        return self

    def public_dict(self) -> dict:
        return {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "listing_id": self.listing_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status.value,
            "provider": self.provider.value,
            "provider_reference": self.provider_ref.external_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class OrderTransition(BaseModel):
    order_id: str
    from_status: OrderStatus
    to_status: OrderStatus
    actor: Actor
    reason: str = ""
    created_at: datetime = Field(default_factory=utcnow)
