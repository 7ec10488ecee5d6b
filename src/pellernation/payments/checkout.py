"""Paystack hosted-checkout link creation."""

import logging
import time
from typing import Any, Optional
from urllib.parse import urlencode

from pellernation.config.settings import get_config
from pellernation.errors import GatewayError, ValidationError
from pellernation.payments.gateway import PaystackClient

logger = logging.getLogger(__name__)


def to_minor_units(amount: int) -> int:
    """NGN -> kobo."""
    return amount * 100


def generate_reference(member_id: int, prefix: Optional[str] = None) -> str:
    """Unique transaction reference: ``{prefix}-{member_id}-{epoch_ms}``."""
    if prefix is None:
        prefix = get_config().reference_prefix
    return f"{prefix}-{member_id}-{int(time.time() * 1000)}"


def build_callback_url(base_url: str, member_id: int) -> str:
    """Append ``userId`` to the configured callback URL."""
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'userId': member_id})}"


def build_initialize_payload(member_id: int, amount: int) -> dict[str, Any]:
    """Request body for Paystack's transaction/initialize endpoint."""
    config = get_config()
    return {
        "email": config.checkout_placeholder_email,
        "amount": to_minor_units(amount),
        "currency": config.paystack_currency,
        "callback_url": build_callback_url(config.paystack_callback_url, member_id),
        "reference": generate_reference(member_id, config.reference_prefix),
        "metadata": {"member_id": member_id},
    }


async def create_payment_link(
    member_id: int,
    amount: int,
    client: Optional[PaystackClient] = None,
) -> str:
    """Create a Paystack payment session for a member.

    Nothing is written locally; the session only matters once a
    verification call or webhook confirms it.

    Args:
        member_id: Internal member id, carried in the callback URL and metadata
        amount: Amount in NGN (converted to kobo for Paystack)
        client: Paystack client (a default one is built from config)

    Returns:
        Paystack authorization_url for the hosted payment page

    Raises:
        ValidationError: If amount is not a positive integer
        GatewayError: On any non-success reply, network failure, or a
            reply without an authorization_url
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Amount must be a positive whole number")

    client = client or PaystackClient()
    payload = build_initialize_payload(member_id, amount)

    response = await client.initialize_transaction(payload)
    url = response.data.get("authorization_url")

    if not response.ok or not url:
        logger.error(
            f"Paystack initialize failed for member {member_id}: "
            f"http={response.http_status} message={response.message}"
        )
        raise GatewayError("Failed to generate payment link", details=response.message)

    logger.info(f"Created payment session {payload['reference']} for member {member_id}")
    return url
