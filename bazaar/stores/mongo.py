from contextlib import asynccontextmanager

from beanie import PydanticObjectId, UpdateResponse
from beanie.odm.operators.update.general import Set
from bson import ObjectId

from bazaar.db.documents import ListingDocument, OrderDocument, OrderTransitionDocument, UserDocument
from bazaar.models.catalog import Listing, User
from bazaar.models.order import Actor, Order, OrderStatus, OrderTransition, ProviderKind, utcnow
from bazaar.stores.base import Catalog, OrderStore


def _object_id(value: str) -> PydanticObjectId | None:
    return PydanticObjectId(value) if ObjectId.is_valid(value) else None


class MongoOrderStore(OrderStore):
    """Orders in MongoDB. Status swaps need a replica set (Atlas, or a local rs) for transactions."""

    @asynccontextmanager
    async def _transaction(self):
        client = OrderDocument.get_motor_collection().database.client
        async with await client.start_session() as session:
            async with session.start_transaction():
                yield session

    def new_id(self) -> str:
        return str(ObjectId())

    async def insert(self, order: Order) -> Order:
        await OrderDocument.from_domain(order).insert()
        return order

    async def get(self, order_id: str) -> Order | None:
        oid = _object_id(order_id)
        if oid is None:
            return None
        doc = await OrderDocument.get(oid)
        return doc.to_domain() if doc else None

    async def find_by_provider_reference(self, provider: ProviderKind, reference: str) -> Order | None:
        doc = await OrderDocument.find_one(
            OrderDocument.provider == provider,
            OrderDocument.provider_reference == reference,
        )
        return doc.to_domain() if doc else None

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
        oid = _object_id(order_id)
        if oid is None:
            return None
        fields = {"status": new.value, "updated_at": utcnow()}
        if provider_payment_id is not None:
            fields["provider_payment_id"] = provider_payment_id
        # The guarded update and its history row commit or abort together
        async with self._transaction() as session:
            doc = await OrderDocument.find_one(
                OrderDocument.id == oid,
                OrderDocument.status == expected,
                session=session,
            ).update(Set(fields), response_type=UpdateResponse.NEW_DOCUMENT, session=session)
            if doc is None:
                return None
            await OrderTransitionDocument(
                order_id=order_id,
                from_status=expected,
                to_status=new,
                actor=actor,
                reason=reason,
            ).insert(session=session)
        return doc.to_domain()

    async def list_for_buyer(self, buyer_id: str) -> list[Order]:
        docs = (
            await OrderDocument.find(OrderDocument.buyer_id == buyer_id)
            .sort(-OrderDocument.created_at)
            .to_list()
        )
        return [d.to_domain() for d in docs]

    async def list_for_seller(self, seller_id: str, status: OrderStatus) -> list[Order]:
        docs = (
            await OrderDocument.find(
                OrderDocument.seller_id == seller_id,
                OrderDocument.status == status,
            )
            .sort(-OrderDocument.created_at)
            .to_list()
        )
        return [d.to_domain() for d in docs]

    async def list_transitions(self, order_id: str) -> list[OrderTransition]:
        docs = (
            await OrderTransitionDocument.find(OrderTransitionDocument.order_id == order_id)
            .sort(+OrderTransitionDocument.created_at)
            .to_list()
        )
        return [d.to_domain() for d in docs]


class MongoCatalog(Catalog):
    async def get_listing(self, listing_id: str) -> Listing | None:
        oid = _object_id(listing_id)
        if oid is None:
            return None
        doc = await ListingDocument.get(oid)
        return doc.to_domain() if doc else None

    async def get_user(self, user_id: str) -> User | None:
        oid = _object_id(user_id)
        if oid is None:
            return None
        doc = await UserDocument.get(oid)
        return doc.to_domain() if doc else None

    async def get_listings(self, listing_ids) -> dict[str, Listing]:
        oids = [oid for oid in (_object_id(i) for i in set(listing_ids)) if oid is not None]
        if not oids:
            return {}
        docs = await ListingDocument.find({"_id": {"$in": oids}}).to_list()
        return {str(d.id): d.to_domain() for d in docs}

    async def get_users(self, user_ids) -> dict[str, User]:
        oids = [oid for oid in (_object_id(i) for i in set(user_ids)) if oid is not None]
        if not oids:
            return {}
        docs = await UserDocument.find({"_id": {"$in": oids}}).to_list()
        return {str(d.id): d.to_domain() for d in docs}
