# core/signature.py
import hashlib
import hmac
import logging
from typing import Optional, Union

logger = logging.getLogger("remindpay")

Message = Union[str, bytes]


def _to_bytes(value: Message) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError(f"Expected str or bytes, got {type(value).__name__}")


def payment_message(order_id: str, payment_id: str) -> str:
    """Canonical message Razorpay Checkout signs: ``order_id|payment_id``."""
    return f"{order_id}|{payment_id}"


def compute_signature(secret: Message, message: Message) -> str:
    """Hex-encoded HMAC-SHA256 of ``message`` keyed by ``secret``.

    Bytes are used as-is (webhook bodies must not be re-encoded); strings are
    UTF-8 encoded.
    """
    return hmac.new(_to_bytes(secret), _to_bytes(message), hashlib.sha256).hexdigest()


def verify_signature(
    secret: Optional[Message],
    message: Optional[Message],
    candidate: Optional[Message],
) -> bool:
    """
    Constant-time check of ``candidate`` against HMAC-SHA256(secret, message).
    Fails closed: a missing secret or any malformed input returns False.
    """
    if not secret or message is None or not candidate:
        return False

    try:
        expected = compute_signature(secret, message)
        candidate_bytes = _to_bytes(candidate)
    except (TypeError, UnicodeError) as e:
        logger.debug(f"Signature input rejected: {e}")
        return False

    return hmac.compare_digest(expected.encode("ascii"), candidate_bytes)
