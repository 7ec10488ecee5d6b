"""Payment reconciliation: apply confirmations to member payment state.

Two independent paths can confirm a payment for the same member:

- the client-driven verification call made after Paystack redirects the
  payer back (``verify_payment``), and
- the Paystack ``charge.success`` webhook (``handle_webhook``).

They may arrive in any order, concurrently, or more than once. Both end
in ``MemberStore.mark_paid``, a single conditional UPDATE that only
matches active, unpaid rows, so exactly one confirmation performs the
unpaid -> paid transition and every other one observes it.
"""

import json
import logging
from enum import Enum
from typing import Any, Optional

from pellernation.errors import (
    InactiveMembership,
    InvalidSignature,
    NotFound,
    StoreError,
    ValidationError,
    VerificationFailed,
)
from pellernation.members.store import Member, MemberStore
from pellernation.payments.gateway import PaystackClient
from pellernation.payments.signature import verify_signature

logger = logging.getLogger(__name__)

CHARGE_SUCCESS_EVENT = "charge.success"


class PaymentOutcome(str, Enum):
    """Result of applying one confirmation."""

    CONFIRMED = "confirmed"  # this call flipped is_paid
    ALREADY_PROCESSED = "already_processed"  # is_paid was already true
    IGNORED = "ignored"  # webhook event type we do not act on


def from_minor_units(amount_kobo: int) -> Optional[int]:
    """
    Kobo -> NGN.

    Returns None when the amount is not a whole number of naira; such an
    amount can never equal a stored integer amount.
    """
    if amount_kobo % 100:
        return None
    return amount_kobo // 100


def _metadata_member_id(data: dict[str, Any]) -> Optional[int]:
    """Member id threaded through Paystack metadata at link creation, if any."""
    metadata = data.get("metadata")
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except ValueError:
            return None
    if not isinstance(metadata, dict):
        return None

    raw = metadata.get("member_id")
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _paid_amount(data: dict[str, Any]) -> Optional[int]:
    """Whole NGN amount Paystack reports as charged, or None if unusable."""
    raw = data.get("amount")
    if isinstance(raw, bool) or not isinstance(raw, int):
        return None
    return from_minor_units(raw)


class PaymentReconciler:
    """Moves members from unpaid to paid on confirmed Paystack payments."""

    def __init__(
        self,
        store: MemberStore,
        client: PaystackClient,
        webhook_secret: str,
    ):
        self.store = store
        self.client = client
        self.webhook_secret = webhook_secret

    async def _transition(self, member: Member, reference: Optional[str]) -> PaymentOutcome:
        """Mark an active member paid, classifying a lost race afterwards."""
        if await self.store.mark_paid(member.id, reference):
            logger.info(f"Payment confirmed for member {member.id} (reference={reference})")
            return PaymentOutcome.CONFIRMED

        # Nothing updated: re-read to learn which guard stopped the write.
        current = await self.store.find(member.id)
        if current is None:
            raise NotFound()
        if not current.is_active:
            raise InactiveMembership()
        if not current.is_paid:
            logger.error(f"Conditional update for member {member.id} matched no row")
            raise StoreError()
        logger.info(f"Payment for member {member.id} already processed")
        return PaymentOutcome.ALREADY_PROCESSED

    async def verify_payment(self, reference: str, member_id: int) -> PaymentOutcome:
        """
        Confirm a payment by asking Paystack about the reference.

        Args:
            reference: Paystack transaction reference
            member_id: Member the client claims paid

        Returns:
            CONFIRMED or ALREADY_PROCESSED

        Raises:
            VerificationFailed: Paystack does not report a successful charge of
                the member's stored amount
            NotFound: No member with this id
            InactiveMembership: Member is not active
            GatewayError: Paystack unreachable or replied with garbage (retryable)
            StoreError: Database failure
        """
        response = await self.client.verify_transaction(reference)
        data = response.data

        if not response.ok or data.get("status") != "success":
            logger.warning(
                f"Verification failed for reference {reference}: "
                f"gateway_status={data.get('status')!r} message={response.message}"
            )
            raise VerificationFailed()

        claimed_id = _metadata_member_id(data)
        if claimed_id is not None and claimed_id != member_id:
            logger.warning(
                f"Reference {reference} belongs to member {claimed_id}, not {member_id}"
            )
            raise VerificationFailed()

        member = await self.store.find(member_id)
        if member is None:
            raise NotFound()
        if not member.is_active:
            logger.warning(f"Refusing to mark inactive member {member_id} paid")
            raise InactiveMembership()

        paid_amount = _paid_amount(data)
        if paid_amount != member.amount:
            logger.warning(
                f"Reference {reference} charged {data.get('amount')!r} kobo; "
                f"member {member_id} expects {member.amount} NGN"
            )
            raise VerificationFailed()

        return await self._transition(member, reference)

    async def _resolve_webhook_member(
        self,
        data: dict[str, Any],
        amount: Optional[int],
        email: Optional[str],
    ) -> Member:
        """
        Find the member a charge.success event pays for.

        Uses the metadata member id when present, otherwise an exact
        email and amount match. The paid amount must equal the stored
        amount either way.
        """
        if amount is None:
            raise NotFound()

        member_id = _metadata_member_id(data)
        if member_id is not None:
            member = await self.store.find(member_id)
            if member is None or member.amount != amount:
                logger.warning(
                    f"Webhook metadata member {member_id} does not match a member "
                    f"expecting {amount}"
                )
                raise NotFound()
            return member

        if not email:
            raise NotFound()

        matches = await self.store.find_by_email_and_amount(email, amount)
        if not matches:
            raise NotFound()
        if len(matches) > 1:
            logger.warning(
                f"{len(matches)} members match email and amount {amount}; "
                f"applying payment to member {matches[0].id}"
            )
        return matches[0]

    async def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> PaymentOutcome:
        """
        Apply a Paystack webhook delivery.

        Args:
            raw_body: Request body exactly as received
            signature: x-paystack-signature header value

        Returns:
            IGNORED for event types other than charge.success,
            CONFIRMED or ALREADY_PROCESSED otherwise

        Raises:
            InvalidSignature: Body not signed with the Paystack secret
            ValidationError: Signed body is not a usable JSON event
            NotFound: No member matches the charge
            InactiveMembership: Matched member is not active
            StoreError: Database failure
        """
        if not verify_signature(raw_body, signature, self.webhook_secret):
            logger.warning("Rejected webhook with invalid signature")
            raise InvalidSignature()

        try:
            event = json.loads(raw_body)
        except ValueError:
            raise ValidationError("Invalid webhook payload")
        if not isinstance(event, dict):
            raise ValidationError("Invalid webhook payload")

        event_type = event.get("event")
        if event_type != CHARGE_SUCCESS_EVENT:
            logger.info(f"Ignoring webhook event: {event_type}")
            return PaymentOutcome.IGNORED

        data = event.get("data")
        if not isinstance(data, dict):
            raise ValidationError("Invalid webhook payload")

        reference = data.get("reference")
        raw_amount = data.get("amount")
        if isinstance(raw_amount, bool) or not isinstance(raw_amount, int):
            raise ValidationError("Invalid webhook payload")
        amount = from_minor_units(raw_amount)

        customer = data.get("customer")
        email = customer.get("email") if isinstance(customer, dict) else None

        logger.info(f"Payment success event received (reference={reference})")

        member = await self._resolve_webhook_member(data, amount, email)
        if not member.is_active:
            logger.warning(f"Refusing to mark inactive member {member.id} paid")
            raise InactiveMembership()
        if member.is_paid:
            logger.info(f"Payment for member {member.id} already processed")
            return PaymentOutcome.ALREADY_PROCESSED

        return await self._transition(member, reference)
