import logging
import sys
from typing import Any

import structlog

# Event keys whose values never reach the log stream
SENSITIVE_KEYS = frozenset(
    {
        "signature",
        "razorpay_signature",
        "key_secret",
        "secret_key",
        "webhook_secret",
        "x-client-secret",
        "session",
    }
)
REDACTED = "[redacted]"


def redact_sensitive(logger: Any, method_name: str, event_dict: dict) -> dict:
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def configure_logging(debug: bool = False, json_logs: bool | None = None) -> None:
    """JSON lines in production, coloured console output when debugging."""
    level = logging.DEBUG if debug else logging.INFO
    if json_logs is None:
        json_logs = not debug
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def bind_request_id(request_id: str) -> None:
    """Start a fresh per-request context so ids never leak between requests."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)


def bind_order_context(order_id: str, provider: str | None = None) -> None:
    """Tag every later line in this request with the order being worked on."""
    fields = {"order_id": order_id}
    if provider:
        fields["provider"] = provider
    structlog.contextvars.bind_contextvars(**fields)
