"""Order lifecycle: creation, buyer confirmation, seller verification, provider events.

Every status change goes through OrderStore.compare_and_set_status guarded on
the status we read, so a stale webhook can never overwrite a later state.
User-driven moves that are off the graph (or lose a race) raise
ConflictError; provider-driven moves that are off the graph are logged no-ops
so webhook replays stay harmless.
"""

from dataclasses import dataclass, field
from typing import Any

from bazaar.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from bazaar.core.logging import bind_order_context, get_logger
from bazaar.models.catalog import Listing, User
from bazaar.models.order import (
    Actor,
    Order,
    OrderDraft,
    OrderStatus,
    ProviderKind,
    amount_in_minor_units,
    can_transition,
)
from bazaar.payments.base import PaymentEvidence
from bazaar.payments.registry import ProviderRegistry
from bazaar.stores.base import Catalog, OrderStore

log = get_logger(__name__)

# apply_provider_event results
APPLIED = "applied"
DUPLICATE = "duplicate"
SKIPPED = "skipped"
NOT_FOUND = "not_found"


@dataclass
class CreatedOrder:
    order: Order
    checkout: dict[str, Any] = field(default_factory=dict)
    listing: Listing | None = None


class OrderLifecycle:
    def __init__(
        self,
        store: OrderStore,
        catalog: Catalog,
        providers: ProviderRegistry,
        default_provider: ProviderKind | str = ProviderKind.UPI,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.providers = providers
        self.default_provider = default_provider

    async def create_order(self, buyer: User, listing_id: str, provider: ProviderKind | str | None = None) -> CreatedOrder:
        """Create the provider-side order first, then the local row.

        A provider failure leaves nothing behind locally. If the insert fails
        after the provider call, the remote order is left to expire and the
        error propagates.
        """
        listing_id = (listing_id or "").strip()
        if not listing_id:
            raise BadRequestError("Listing ID is required")
        listing = await self.catalog.get_listing(listing_id)
        if not listing:
            raise NotFoundError("Listing not found")
        if not listing.is_active:
            raise BadRequestError("Listing is not active")
        if listing.owner_id == buyer.id:
            raise BadRequestError("You cannot buy your own listing")
        try:
            amount = amount_in_minor_units(listing.price)
        except ValueError:
            raise BadRequestError("Listing has an invalid price") from None

        adapter = self.providers.get(provider or self.default_provider)
        draft = OrderDraft(
            id=self.store.new_id(),
            buyer_id=buyer.id,
            seller_id=listing.owner_id,
            listing_id=listing.id,
            amount=amount,
            currency=listing.currency,
            provider=adapter.kind,
        )
        handle = await adapter.create_provider_order(draft, buyer, listing)
        order = draft.to_order(handle.ref)
        try:
            await self.store.insert(order)
        except Exception:
            log.exception(
                "order_insert_failed",
                order_id=order.id,
                provider=order.provider.value,
                provider_reference=order.provider_ref.external_id,
            )
            raise
        log.info(
            "order_created",
            order_id=order.id,
            buyer_id=buyer.id,
            listing_id=listing.id,
            provider=order.provider.value,
            amount=order.amount,
            currency=order.currency,
        )
        return CreatedOrder(order=order, checkout=handle.checkout, listing=listing)

    async def _load(self, order_id: str) -> Order:
        order = await self.store.get(order_id)
        if not order:
            raise NotFoundError("Order not found")
        bind_order_context(order.id, order.provider.value)
        return order

    async def get_for_buyer(self, user: User, order_id: str) -> Order:
        order = await self._load(order_id)
        if order.buyer_id != user.id:
            raise ForbiddenError("Not your order")
        return order

    async def get_for_seller(self, user: User, order_id: str) -> Order:
        order = await self._load(order_id)
        if order.seller_id != user.id:
            raise ForbiddenError("Not your order")
        return order

    async def _transition(
        self,
        order: Order,
        target: OrderStatus,
        actor: Actor,
        reason: str = "",
        payment_id: str | None = None,
    ) -> Order:
        if not can_transition(actor, order.status, target):
            raise ConflictError(
                f"Cannot move order from {order.status.value} to {target.value}",
                details={"status": order.status.value},
            )
        updated = await self.store.compare_and_set_status(
            order.id,
            order.status,
            target,
            actor=actor,
            reason=reason,
            provider_payment_id=payment_id,
        )
        if updated is None:
            latest = await self.store.get(order.id)
            raise ConflictError(
                "Order status changed, retry",
                details={"status": latest.status.value if latest else None},
            )
        log.info(
            "order_transition",
            order_id=order.id,
            from_status=order.status.value,
            to_status=target.value,
            actor=actor.value,
            reason=reason,
        )
        return updated

    async def order_status(self, user: User, order_id: str) -> dict:
        order = await self.get_for_buyer(user, order_id)
        listing = await self.catalog.get_listing(order.listing_id)
        return {
            "id": order.id,
            "status": order.status.value,
            "amount": order.amount,
            "currency": order.currency,
            "provider": order.provider.value,
            "created_at": order.created_at.isoformat(),
            "updated_at": order.updated_at.isoformat(),
            "listing": listing.summary() if listing else None,
        }

    async def start_upi(self, user: User, order_id: str) -> tuple[Order, dict]:
        """Hand the buyer the deep link and mark the order pending (created -> pending)."""
        order = await self.get_for_buyer(user, order_id)
        if order.provider != ProviderKind.UPI:
            raise BadRequestError("Order is not a UPI order")
        adapter = self.providers.get(ProviderKind.UPI)
        if order.status == OrderStatus.CREATED:
            order = await self._transition(order, OrderStatus.PENDING, Actor.BUYER, reason="upi intent issued")
        elif order.status != OrderStatus.PENDING:
            raise ConflictError("Order is no longer awaiting payment", details={"status": order.status.value})
        return order, await adapter.deep_link(order)

    async def confirm_payment(self, user: User, order_id: str, evidence: PaymentEvidence) -> Order:
        """Buyer says they paid; the provider decides what that is worth.

        Razorpay checks the checkout signature and Cashfree asks the API, giving
        paid or failed. UPI can't be checked, so it parks the order in
        verification_pending for the seller.
        """
        order = await self.get_for_buyer(user, order_id)
        if order.status.is_terminal or order.status == OrderStatus.VERIFICATION_PENDING:
            raise ConflictError("Order is no longer awaiting payment", details={"status": order.status.value})
        adapter = self.providers.get(order.provider)
        result = await adapter.verify_payment(order, evidence)
        return await self._transition(
            order,
            result.outcome.order_status,
            Actor.BUYER,
            reason=result.reason,
            payment_id=result.payment_id,
        )

    async def seller_verify(self, user: User, order_id: str, approve: bool) -> Order:
        order = await self.get_for_seller(user, order_id)
        if order.status != OrderStatus.VERIFICATION_PENDING:
            raise ConflictError("Order is not pending verification", details={"status": order.status.value})
        target = OrderStatus.COMPLETED if approve else OrderStatus.FAILED
        reason = "seller approved payment" if approve else "seller rejected payment"
        return await self._transition(order, target, Actor.SELLER, reason=reason)

    async def apply_provider_event(
        self,
        provider: ProviderKind,
        reference: str,
        target: OrderStatus,
        payment_id: str | None = None,
        event: str = "",
    ) -> str:
        """Apply a verified webhook event. Never raises for replays or unknown orders."""
        order = await self.store.find_by_provider_reference(provider, reference)
        if order is None:
            log.warning("webhook_order_not_found", provider=provider.value, reference=reference, webhook_event=event)
            return NOT_FOUND
        bind_order_context(order.id, provider.value)
        if order.status == target:
            log.info("webhook_duplicate", order_id=order.id, status=order.status.value, webhook_event=event)
            return DUPLICATE
        if not can_transition(Actor.PROVIDER, order.status, target):
            log.info(
                "webhook_transition_skipped",
                order_id=order.id,
                status=order.status.value,
                target=target.value,
                webhook_event=event,
            )
            return SKIPPED
        updated = await self.store.compare_and_set_status(
            order.id,
            order.status,
            target,
            actor=Actor.PROVIDER,
            reason=f"{provider.value} webhook {event}".strip(),
            provider_payment_id=payment_id,
        )
        if updated is None:
            log.info("webhook_race_lost", order_id=order.id, target=target.value, webhook_event=event)
            return SKIPPED
        log.info(
            "order_transition",
            order_id=order.id,
            from_status=order.status.value,
            to_status=target.value,
            actor=Actor.PROVIDER.value,
            webhook_event=event,
        )
        return APPLIED

    async def list_purchases(self, user: User) -> list[dict]:
        orders = await self.store.list_for_buyer(user.id)
        listings = await self.catalog.get_listings(o.listing_id for o in orders)
        out = []
        for o in orders:
            listing = listings.get(o.listing_id)
            out.append({**o.public_dict(), "listing": listing.summary() if listing else None})
        return out

    async def list_pending_verification(self, user: User) -> list[dict]:
        orders = await self.store.list_for_seller(user.id, OrderStatus.VERIFICATION_PENDING)
        listings = await self.catalog.get_listings(o.listing_id for o in orders)
        buyers = await self.catalog.get_users(o.buyer_id for o in orders)
        out = []
        for o in orders:
            listing = listings.get(o.listing_id)
            buyer = buyers.get(o.buyer_id)
            out.append(
                {
                    **o.public_dict(),
                    "payment_reference": o.provider_payment_id,
                    "listing": listing.summary() if listing else None,
                    "buyer": {"name": buyer.name, "email": buyer.email} if buyer else None,
                }
            )
        return out
