"""Shared FastAPI dependencies."""

from functools import lru_cache

import redis.asyncio as aioredis
from fastapi import Depends, Request

from bazaar.core.config import Settings, get_settings
from bazaar.core.exceptions import RateLimitedError, UnauthorizedError
from bazaar.core.security import load_session_cookie
from bazaar.models.catalog import User
from bazaar.payments.registry import ProviderRegistry, build_registry
from bazaar.services.orders import OrderLifecycle
from bazaar.services.rate_limit import RateLimiter
from bazaar.stores.base import Catalog, OrderStore, get_catalog, get_order_store

SESSION_COOKIE_NAME = "bazaar_session"


async def get_current_user(request: Request, catalog: Catalog = Depends(get_catalog)) -> User:
    """Dependency: load session from cookie and return User."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid session")
    user = await catalog.get_user(str(user_id))
    if not user:
        raise UnauthorizedError("User not found")
    if payload.get("session_version") != user.session_version:
        raise UnauthorizedError("Session invalidated")
    return user


def get_providers(
    settings: Settings = Depends(get_settings),
    catalog: Catalog = Depends(get_catalog),
) -> ProviderRegistry:
    return build_registry(settings, catalog=catalog)


def get_lifecycle(
    store: OrderStore = Depends(get_order_store),
    catalog: Catalog = Depends(get_catalog),
    providers: ProviderRegistry = Depends(get_providers),
    settings: Settings = Depends(get_settings),
) -> OrderLifecycle:
    return OrderLifecycle(store, catalog, providers, default_provider=settings.default_payment_provider)


@lru_cache
def _redis_client(url: str):
    return aioredis.from_url(url, decode_responses=True)


def get_redis(settings: Settings = Depends(get_settings)):
    return _redis_client(settings.redis_url)


def get_order_rate_limiter(
    settings: Settings = Depends(get_settings),
    redis=Depends(get_redis),
) -> RateLimiter | None:
    if not settings.rate_limit_enabled:
        return None
    return RateLimiter(redis, "orders:create", settings.order_create_limit, settings.order_create_window_seconds)


async def limit_order_creation(
    user: User = Depends(get_current_user),
    limiter: RateLimiter | None = Depends(get_order_rate_limiter),
) -> User:
    """Dependency: authenticated buyer, throttled per user id."""
    if limiter is not None:
        allowed, retry_after = await limiter.hit(user.id)
        if not allowed:
            raise RateLimitedError(retry_after)
    return user
