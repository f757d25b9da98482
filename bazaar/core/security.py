"""Session cookies and HMAC signature checks for payment providers."""

import hashlib
import hmac
from typing import Any

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from bazaar.core.config import get_settings

SESSION_MAX_AGE = 7 * 24 * 3600  # 7 days


def get_session_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(
        settings.secret_key,
        salt="bazaar-session",
        signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
    )


def create_session_cookie(payload: dict[str, Any]) -> str:
    """Sign a session payload. Sessions are issued by the auth service; tests use this too."""
    return get_session_serializer().dumps(payload)


def load_session_cookie(cookie_value: str, max_age_seconds: int = SESSION_MAX_AGE) -> dict[str, Any] | None:
    serializer = get_session_serializer()
    try:
        return serializer.loads(cookie_value, max_age=max_age_seconds)
    except (BadSignature, SignatureExpired):
        return None


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_webhook_signature(payload: bytes, signature: str | None, secret: str) -> bool:
    """HMAC-SHA256 hex over the raw body, compared in constant time."""
    if not signature or not secret:
        return False
    expected = hmac_sha256_hex(secret, payload)
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8"))


def razorpay_payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    return hmac_sha256_hex(secret, f"{order_id}|{payment_id}".encode("utf-8"))


def verify_razorpay_payment_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Checkout handler signature: HMAC-SHA256 of "order_id|payment_id" keyed by the key secret."""
    if not signature or not secret:
        return False
    expected = razorpay_payment_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))
