"""HMAC signature helpers for gateway payments and webhooks."""

import hashlib
import hmac

from payrelay.common.errors import InvalidRequestError


def compute_payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Return the hex HMAC-SHA256 of `order_id|payment_id` under `secret`."""

    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def require_payment_fields(order_id: str | None, payment_id: str | None, signature: str | None) -> None:
    missing = [
        name
        for name, value in (("orderId", order_id), ("paymentId", payment_id), ("signature", signature))
        if not value
    ]
    if missing:
        raise InvalidRequestError(f"Missing required payment details: {', '.join(missing)}")


def verify_payment_signature(
    order_id: str | None,
    payment_id: str | None,
    signature: str | None,
    secret: str,
) -> bool:
    """Check a checkout signature in constant time.

    Missing identifiers are a caller error, not a failed verification, so they
    raise before any digest is computed.
    """

    require_payment_fields(order_id, payment_id, signature)
    expected = compute_payment_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


def compute_webhook_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_webhook_signature(raw_body: bytes, signature: str | None, secret: str) -> bool:
    """Check the gateway's webhook signature over the untouched request body."""

    if not signature:
        return False
    expected = compute_webhook_signature(raw_body, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
