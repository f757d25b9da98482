from fastapi import APIRouter, Depends

from bazaar.deps import get_current_user, get_lifecycle
from bazaar.models.catalog import User
from bazaar.services.orders import OrderLifecycle

router = APIRouter()


@router.get("")
async def purchase_history(
    user: User = Depends(get_current_user),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    """Buyer's orders in every state, newest first, with listing summaries."""
    return {"orders": await lifecycle.list_purchases(user)}
