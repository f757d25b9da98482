from bazaar.models.catalog import Listing, User
from bazaar.models.order import (
    Actor,
    CashfreeRef,
    Order,
    OrderDraft,
    OrderStatus,
    OrderTransition,
    ProviderKind,
    RazorpayRef,
    UpiRef,
)

__all__ = [
    "Actor",
    "CashfreeRef",
    "Listing",
    "Order",
    "OrderDraft",
    "OrderStatus",
    "OrderTransition",
    "ProviderKind",
    "RazorpayRef",
    "UpiRef",
    "User",
]
