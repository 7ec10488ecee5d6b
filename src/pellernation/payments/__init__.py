"""Paystack payment links, webhook verification and payment reconciliation.

Handles checkout link creation, webhook signature checks, and the
unpaid -> paid transition shared by the verification and webhook paths.
"""

from pellernation.payments.checkout import create_payment_link
from pellernation.payments.gateway import PaystackClient
from pellernation.payments.reconciler import PaymentOutcome, PaymentReconciler
from pellernation.payments.signature import verify_signature

__all__ = [
    "PaymentOutcome",
    "PaymentReconciler",
    "PaystackClient",
    "create_payment_link",
    "verify_signature",
]
