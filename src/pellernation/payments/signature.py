"""Paystack webhook signature verification."""

import hashlib
import hmac
from typing import Optional

# Header Paystack uses to carry the HMAC of the raw body
SIGNATURE_HEADER = "x-paystack-signature"


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA512 of the raw body keyed with the secret."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify_signature(raw_body: bytes, supplied_signature: Optional[str], secret: str) -> bool:
    """
    Check that a webhook body was signed by Paystack.

    The signature must be computed over the exact bytes received, not
    over a re-serialized JSON document.

    Args:
        raw_body: Request body as received
        supplied_signature: Value of the x-paystack-signature header
        secret: Paystack secret key

    Returns:
        True iff the supplied signature matches. Missing, empty or
        malformed signatures, and an empty secret, return False.
    """
    if not secret or not supplied_signature or not isinstance(supplied_signature, str):
        return False
    if not isinstance(raw_body, (bytes, bytearray)):
        return False

    try:
        supplied = supplied_signature.strip().lower().encode("ascii")
    except UnicodeEncodeError:
        return False

    expected = compute_signature(bytes(raw_body), secret).encode("ascii")
    return hmac.compare_digest(expected, supplied)
