from abc import ABC, abstractmethod
from collections.abc import Iterable

from bazaar.models.catalog import Listing, User
from bazaar.models.order import Actor, Order, OrderStatus, OrderTransition, ProviderKind


class OrderStore(ABC):
    @abstractmethod
    def new_id(self) -> str:
        """Allocate an order id before the provider call so it can be used as a receipt."""
        ...

    @abstractmethod
    async def insert(self, order: Order) -> Order:
        ...

    @abstractmethod
    async def get(self, order_id: str) -> Order | None:
        ...

    @abstractmethod
    async def find_by_provider_reference(self, provider: ProviderKind, reference: str) -> Order | None:
        ...

    @abstractmethod
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
        """Set status to `new` only if it is still `expected`.

        Returns the updated order, or None when the guard did not match (the
        order moved on or does not exist). A successful swap also appends an
        OrderTransition; a failed one writes nothing.
        """
        ...

    @abstractmethod
    async def list_for_buyer(self, buyer_id: str) -> list[Order]:
        """Newest first."""
        ...

    @abstractmethod
    async def list_for_seller(self, seller_id: str, status: OrderStatus) -> list[Order]:
        """Newest first."""
        ...

    @abstractmethod
    async def list_transitions(self, order_id: str) -> list[OrderTransition]:
        ...


class Catalog(ABC):
    """Listings and users, owned by other services; read-only here."""

    @abstractmethod
    async def get_listing(self, listing_id: str) -> Listing | None:
        ...

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        ...

    async def get_listings(self, listing_ids: Iterable[str]) -> dict[str, Listing]:
        out: dict[str, Listing] = {}
        for listing_id in set(listing_ids):
            listing = await self.get_listing(listing_id)
            if listing:
                out[listing_id] = listing
        return out

    async def get_users(self, user_ids: Iterable[str]) -> dict[str, User]:
        out: dict[str, User] = {}
        for user_id in set(user_ids):
            user = await self.get_user(user_id)
            if user:
                out[user_id] = user
        return out


_memory: tuple[OrderStore, Catalog] | None = None


def _memory_stores() -> tuple[OrderStore, Catalog]:
    global _memory
    if _memory is None:
        from bazaar.stores.memory import InMemoryCatalog, InMemoryOrderStore
        _memory = (InMemoryOrderStore(), InMemoryCatalog())
    return _memory


def get_order_store() -> OrderStore:
    from bazaar.core.config import get_settings
    if get_settings().store_backend == "memory":
        return _memory_stores()[0]
    from bazaar.stores.mongo import MongoOrderStore
    return MongoOrderStore()


def get_catalog() -> Catalog:
    from bazaar.core.config import get_settings
    if get_settings().store_backend == "memory":
        return _memory_stores()[1]
    from bazaar.stores.mongo import MongoCatalog
    return MongoCatalog()
