import time
import uuid

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from bazaar.core.config import get_settings
from bazaar.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from bazaar.core.logging import bind_request_id, configure_logging, get_logger
from bazaar.routers import orders, purchases, webhooks

settings = get_settings()
configure_logging(debug=settings.debug, json_logs=settings.log_json)
log = get_logger(__name__)

app = FastAPI(
    title="Bazaar Orders API",
    version="1.0.0",
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(orders.router, prefix="/v1/orders", tags=["orders"])
app.include_router(purchases.router, prefix="/v1/purchases", tags=["orders"])
app.include_router(webhooks.router, prefix="/v1/webhooks", tags=["webhooks"])


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    if settings.store_backend == "mongo":
        from bazaar.db.init import init_db
        await init_db()
        log.info("startup", msg="DB connected")
    else:
        log.info("startup", msg="Using in-memory stores", store_backend=settings.store_backend)


@app.get("/health")
async def health():
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
