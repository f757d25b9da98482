from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from bazaar.models.catalog import Listing, User
from bazaar.models.order import Order, OrderDraft, OrderStatus, ProviderKind, ProviderRef


class PaymentOutcome(str, Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    INDETERMINATE = "indeterminate"

    @property
    def order_status(self) -> OrderStatus:
        return _OUTCOME_STATUS[self]


_OUTCOME_STATUS = {
    PaymentOutcome.CONFIRMED: OrderStatus.PAID,
    PaymentOutcome.REJECTED: OrderStatus.FAILED,
    PaymentOutcome.INDETERMINATE: OrderStatus.VERIFICATION_PENDING,
}


@dataclass
class ProviderHandle:
    ref: ProviderRef
    checkout: dict[str, Any] = field(default_factory=dict)  # what the client needs to pay


@dataclass
class PaymentEvidence:
    razorpay_payment_id: str | None = None
    razorpay_signature: str | None = None
    utr: str | None = None  # UPI transaction reference quoted by the buyer


@dataclass
class Verification:
    outcome: PaymentOutcome
    payment_id: str | None = None
    reason: str = ""


class PaymentProvider(ABC):
    kind: ProviderKind

    @abstractmethod
    async def create_provider_order(self, order: OrderDraft, buyer: User, listing: Listing) -> ProviderHandle:
        """Create the provider-side payable artifact for a not-yet-persisted order."""
        ...

    @abstractmethod
    async def verify_payment(self, order: Order, evidence: PaymentEvidence) -> Verification:
        """Decide whether the buyer actually paid."""
        ...
