"""Beanie documents backing the Mongo stores."""

from datetime import datetime

from beanie import Document, Indexed, PydanticObjectId
from pymongo import IndexModel
from pydantic import Field

from bazaar.models.order import (
    Actor,
    Order,
    OrderStatus,
    OrderTransition,
    ProviderKind,
    ProviderRef,
    utcnow,
)
from bazaar.models.catalog import Listing, User


class OrderDocument(Document):
    buyer_id: Indexed(str)
    seller_id: Indexed(str)
    listing_id: str
    amount: int  # paise
    currency: str
    status: OrderStatus = OrderStatus.CREATED
    provider: ProviderKind
    provider_ref: ProviderRef
    provider_reference: str  # denormalized provider_ref.external_id for webhook lookups
    provider_payment_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "orders"
        indexes = [
            IndexModel([("provider", 1), ("provider_reference", 1)], unique=True),
            [("seller_id", 1), ("status", 1), ("created_at", -1)],
            [("buyer_id", 1), ("created_at", -1)],
        ]

    @classmethod
    def from_domain(cls, order: Order) -> "OrderDocument":
        return cls(
            id=PydanticObjectId(order.id),
            buyer_id=order.buyer_id,
            seller_id=order.seller_id,
            listing_id=order.listing_id,
            amount=order.amount,
            currency=order.currency,
            status=order.status,
            provider=order.provider,
            provider_ref=order.provider_ref,
            provider_reference=order.provider_ref.external_id,
            provider_payment_id=order.provider_payment_id,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )

    def to_domain(self) -> Order:
        return Order(
            id=str(self.id),
            buyer_id=self.buyer_id,
            seller_id=self.seller_id,
            listing_id=self.listing_id,
            amount=self.amount,
            currency=self.currency,
            status=self.status,
            provider=self.provider,
            provider_ref=self.provider_ref,
            provider_payment_id=self.provider_payment_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class OrderTransitionDocument(Document):
    order_id: Indexed(str)
    from_status: OrderStatus
    to_status: OrderStatus
    actor: Actor
    reason: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "order_transitions"
        indexes = [[("order_id", 1), ("created_at", 1)]]

    def to_domain(self) -> OrderTransition:
        return OrderTransition(**self.model_dump(exclude={"id", "revision_id"}))


class ListingDocument(Document):
    title: str
    price: float
    currency: str = "INR"
    owner_id: Indexed(str)
    is_active: bool = True
    images: list[str] = Field(default_factory=list)

    class Settings:
        name = "listings"

    def to_domain(self) -> Listing:
        return Listing(
            id=str(self.id),
            title=self.title,
            price=self.price,
            currency=self.currency,
            owner_id=self.owner_id,
            is_active=self.is_active,
            images=self.images,
        )


class UserDocument(Document):
    email: str
    name: str = ""
    role: str = "user"
    phone: str | None = None
    upi_handle: str | None = None
    session_version: int = 0

    class Settings:
        name = "users"

    def to_domain(self) -> User:
        return User(
            id=str(self.id),
            email=self.email,
            name=self.name,
            role=self.role,
            phone=self.phone,
            upi_handle=self.upi_handle,
            session_version=self.session_version,
        )
