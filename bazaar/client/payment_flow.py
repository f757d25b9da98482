"""Client side of the payment flow: create, pay, then poll until the order settles.

    async with PaymentFlowClient("https://api.example.com", session_cookie=cookie) as flow:
        created = await flow.create_order(listing_id, provider="upi")
        link = await flow.start_upi(created["order"]["id"])
        ...  # buyer pays in their UPI app
        await flow.confirm(created["order"]["id"], utr="412345678901")
        poller = flow.poller(created["order"]["id"], on_update=print)
        poller.start()
        final = await poller.wait()

Closing the client does not cancel anything server-side; the order keeps
whatever status it reached and shows up in the purchase history.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from bazaar.core.logging import get_logger

log = get_logger(__name__)

TERMINAL_STATUSES = frozenset({"paid", "completed", "failed"})
SESSION_COOKIE_NAME = "bazaar_session"

StatusCallback = Callable[[str], Awaitable[None] | None]


class PaymentFlowError(Exception):
    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


def _raise_for_error(r: httpx.Response) -> dict:
    try:
        body = r.json()
    except ValueError:
        body = None
    if r.status_code >= 400:
        message = f"HTTP {r.status_code}"
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = body["error"].get("message") or message
        raise PaymentFlowError(message, status_code=r.status_code, body=body)
    return body if isinstance(body, dict) else {}


async def _send(http: httpx.AsyncClient, method: str, url: str, **kwargs) -> dict:
    try:
        r = await http.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise PaymentFlowError(f"{method} {url}: {e}") from e
    return _raise_for_error(r)


class OrderStatusPoller:
    """Polls GET /v1/orders/{id}/status on an interval.

    start() schedules the loop; stop() lets the current request finish and
    ends the loop; cancel() aborts immediately. wait() returns the last status
    seen, or raises the error that ended polling.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        order_id: str,
        interval: float = 3.0,
        timeout: float | None = 600.0,
        on_update: StatusCallback | None = None,
    ) -> None:
        self.http = http
        self.order_id = order_id
        self.interval = interval
        self.timeout = timeout
        self.on_update = on_update
        self.last_status: str | None = None
        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "OrderStatusPoller":
        if self._task is not None:
            raise RuntimeError("poller already started")
        self._task = asyncio.create_task(self._run(), name=f"order-poller-{self.order_id}")
        return self

    def stop(self) -> None:
        self._stop.set()

    def cancel(self) -> None:
        self._stop.set()
        if self._task is not None:
            self._task.cancel()

    async def wait(self) -> str | None:
        if self._task is None:
            raise RuntimeError("poller not started")
        try:
            return await self._task
        except asyncio.CancelledError:
            return self.last_status

    async def poll_once(self) -> str:
        body = await _send(self.http, "GET", f"/v1/orders/{self.order_id}/status")
        status = (body.get("order") or {}).get("status")
        if not status:
            raise PaymentFlowError("status missing from response", body=body)
        if status != self.last_status:
            self.last_status = status
            if self.on_update is not None:
                result = self.on_update(status)
                if asyncio.iscoroutine(result):
                    await result
        return status

    async def _run(self) -> str | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout if self.timeout is not None else None
        while not self._stop.is_set():
            status = await self.poll_once()
            if status in TERMINAL_STATUSES:
                log.info("order_poll_settled", order_id=self.order_id, status=status)
                return status
            if deadline is not None and loop.time() >= deadline:
                log.info("order_poll_timeout", order_id=self.order_id, status=status)
                return status
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        return self.last_status


class PaymentFlowClient:
    def __init__(
        self,
        base_url: str = "",
        session_cookie: str | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        if http is None:
            cookies = {SESSION_COOKIE_NAME: session_cookie} if session_cookie else None
            http = httpx.AsyncClient(base_url=base_url, cookies=cookies, timeout=30)
            self._owns_http = True
        else:
            self._owns_http = False
        self.http = http

    async def __aenter__(self) -> "PaymentFlowClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def create_order(self, listing_id: str, provider: str | None = None) -> dict:
        payload: dict[str, Any] = {"listing_id": listing_id}
        if provider:
            payload["provider"] = provider
        return await _send(self.http, "POST", "/v1/orders", json=payload)

    async def start_upi(self, order_id: str) -> dict:
        body = await _send(self.http, "POST", f"/v1/orders/{order_id}/upi-intent")
        return body.get("checkout") or {}

    async def confirm(
        self,
        order_id: str,
        razorpay_payment_id: str | None = None,
        razorpay_signature: str | None = None,
        utr: str | None = None,
    ) -> dict:
        payload = {
            k: v
            for k, v in {
                "razorpay_payment_id": razorpay_payment_id,
                "razorpay_signature": razorpay_signature,
                "utr": utr,
            }.items()
            if v is not None
        }
        body = await _send(self.http, "POST", f"/v1/orders/{order_id}/confirm", json=payload)
        return body.get("order") or {}

    async def status(self, order_id: str) -> dict:
        body = await _send(self.http, "GET", f"/v1/orders/{order_id}/status")
        return body.get("order") or {}

    def poller(
        self,
        order_id: str,
        interval: float = 3.0,
        timeout: float | None = 600.0,
        on_update: StatusCallback | None = None,
    ) -> OrderStatusPoller:
        return OrderStatusPoller(self.http, order_id, interval=interval, timeout=timeout, on_update=on_update)
