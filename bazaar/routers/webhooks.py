from fastapi import APIRouter, Depends, Request

from bazaar.core.config import Settings, get_settings
from bazaar.core.exceptions import NotFoundError
from bazaar.deps import get_lifecycle
from bazaar.models.order import ProviderKind
from bazaar.services import webhooks as webhooks_service
from bazaar.services.orders import OrderLifecycle

router = APIRouter()


@router.post("/{provider}")
async def provider_webhook(
    provider: str,
    request: Request,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings),
):
    """Razorpay / Cashfree webhook: 400 on bad signature, 200 once verified."""
    try:
        kind = ProviderKind(provider)
    except ValueError:
        raise NotFoundError("Unknown webhook provider") from None
    header = webhooks_service.SIGNATURE_HEADERS.get(kind)
    if header is None:
        raise NotFoundError("Unknown webhook provider")
    body = await request.body()
    return await webhooks_service.handle_webhook(lifecycle, settings, kind, body, request.headers.get(header))
