import base64
import hashlib
import hmac


def compute_cashfree_signature(*, secret: str, raw_body: bytes, timestamp: str = "") -> str:
    """
    Cashfree signs webhooks as base64(HMAC-SHA256(timestamp + raw_body)),
    where timestamp is the x-webhook-timestamp header.
    """
    message = timestamp.encode("utf-8") + raw_body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_cashfree_signature(*, secret: str, raw_body: bytes, signature: str, timestamp: str = "") -> bool:
    if not secret or not signature:
        return False
    expected = compute_cashfree_signature(secret=secret, raw_body=raw_body, timestamp=timestamp)
    return hmac.compare_digest(expected, signature)
