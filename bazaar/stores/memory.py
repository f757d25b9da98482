"""In-process stores for tests and local runs without MongoDB."""

import asyncio

from bson import ObjectId

from bazaar.models.catalog import Listing, User
from bazaar.models.order import Actor, Order, OrderStatus, OrderTransition, ProviderKind, utcnow
from bazaar.stores.base import Catalog, OrderStore


class InMemoryOrderStore(OrderStore):
    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._transitions: list[OrderTransition] = []
        self._lock = asyncio.Lock()

    def new_id(self) -> str:
        return str(ObjectId())

    async def insert(self, order: Order) -> Order:
        async with self._lock:
            if order.id in self._orders:
                raise ValueError(f"Duplicate order id {order.id}")
            for existing in self._orders.values():
                if (
                    existing.provider == order.provider
                    and existing.provider_ref.external_id == order.provider_ref.external_id
                ):
                    raise ValueError(f"Duplicate provider reference {order.provider_ref.external_id}")
            self._orders[order.id] = order.model_copy(deep=True)
        return order

    async def get(self, order_id: str) -> Order | None:
        order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    async def find_by_provider_reference(self, provider: ProviderKind, reference: str) -> Order | None:
        for order in self._orders.values():
            if order.provider == provider and order.provider_ref.external_id == reference:
                return order.model_copy(deep=True)
        return None

    async def compare_and_set_status(
        self,
        order_id: str,
        expected: OrderStatus,
        new: OrderStatus,
        *,
        actor: Actor,
        reason: str = "",
        provider_payment_id: str | None = None,
    ) -> Order | None:
        async with self._lock:
            current = self._orders.get(order_id)
            if current is None or current.status != expected:
                return None
            update = {"status": new, "updated_at": utcnow()}
            if provider_payment_id is not None:
                update["provider_payment_id"] = provider_payment_id
            updated = current.model_copy(update=update)
            self._orders[order_id] = updated
            self._transitions.append(
                OrderTransition(order_id=order_id, from_status=expected, to_status=new, actor=actor, reason=reason)
            )
        return updated.model_copy(deep=True)

    async def list_for_buyer(self, buyer_id: str) -> list[Order]:
        orders = [o for o in self._orders.values() if o.buyer_id == buyer_id]
        return [o.model_copy(deep=True) for o in sorted(orders, key=lambda o: o.created_at, reverse=True)]

    async def list_for_seller(self, seller_id: str, status: OrderStatus) -> list[Order]:
        orders = [o for o in self._orders.values() if o.seller_id == seller_id and o.status == status]
        return [o.model_copy(deep=True) for o in sorted(orders, key=lambda o: o.created_at, reverse=True)]

    async def list_transitions(self, order_id: str) -> list[OrderTransition]:
        return [t for t in self._transitions if t.order_id == order_id]


class InMemoryCatalog(Catalog):
    def __init__(self) -> None:
        self.listings: dict[str, Listing] = {}
        self.users: dict[str, User] = {}

    def add_listing(self, listing: Listing) -> Listing:
        self.listings[listing.id] = listing
        return listing

    def add_user(self, user: User) -> User:
        self.users[user.id] = user
        return user

    async def get_listing(self, listing_id: str) -> Listing | None:
        return self.listings.get(listing_id)

    async def get_user(self, user_id: str) -> User | None:
        return self.users.get(user_id)
