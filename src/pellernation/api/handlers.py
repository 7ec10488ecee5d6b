"""Request handlers for the public HTTP endpoints."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

from aiohttp import web

from pellernation.errors import ValidationError
from pellernation.members.registration import ImageUpload, RegistrationForm, register_member
from pellernation.members.store import MemberStore
from pellernation.payments.checkout import create_payment_link
from pellernation.payments.gateway import PaystackClient
from pellernation.payments.reconciler import PaymentOutcome, PaymentReconciler
from pellernation.payments.signature import SIGNATURE_HEADER

logger = logging.getLogger(__name__)

STORE_KEY = web.AppKey("store", MemberStore)
GATEWAY_KEY = web.AppKey("gateway", PaystackClient)
RECONCILER_KEY = web.AppKey("reconciler", PaymentReconciler)
UPLOAD_DIR_KEY = web.AppKey("upload_dir", Path)

_WEBHOOK_MESSAGES = {
    PaymentOutcome.CONFIRMED: "Payment confirmed",
    PaymentOutcome.ALREADY_PROCESSED: "Payment already processed",
}


def parse_member_id(value: Any, missing_message: str) -> int:
    """Accept ids sent as JSON numbers or numeric strings."""
    if value is None or value == "":
        raise ValidationError(missing_message)
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError("Invalid user ID")
    try:
        member_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Invalid user ID")
    if member_id <= 0:
        raise ValidationError("Invalid user ID")
    return member_id


def parse_amount(value: Any) -> int:
    """Whole NGN amount from a JSON number or numeric string."""
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError("Amount must be a positive whole number")
    try:
        amount = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Amount must be a positive whole number")
    if amount <= 0:
        raise ValidationError("Amount must be a positive whole number")
    return amount


async def read_json(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body")
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON body")
    return body


def _text_field(form: Any, name: str) -> Optional[str]:
    value = form.get(name)
    return value if isinstance(value, str) else None


async def submit_form(request: web.Request) -> web.Response:
    """POST /submit-form: register a member from a multipart form."""
    form = await request.post()

    image = None
    image_field = form.get("image")
    if isinstance(image_field, web.FileField) and image_field.filename:
        image = ImageUpload(
            filename=image_field.filename,
            content_type=image_field.content_type,
            data=await asyncio.to_thread(image_field.file.read),
        )

    registration = RegistrationForm(
        nickname=_text_field(form, "nickname"),
        tiktok_handle=_text_field(form, "tiktokHandle"),
        fan_since=_text_field(form, "fanSince"),
        badge=_text_field(form, "badge"),
        nationality=_text_field(form, "nationality"),
        email=_text_field(form, "email"),
        image=image,
    )

    member_id = await register_member(
        request.app[STORE_KEY], registration, request.app[UPLOAD_DIR_KEY]
    )
    return web.json_response({"success": True, "userId": member_id}, status=201)


async def generate_payment_link(request: web.Request) -> web.Response:
    """POST /generate-payment-link: create a Paystack checkout URL."""
    body = await read_json(request)
    if not body.get("userId") or not body.get("amount"):
        raise ValidationError("User ID and amount required")

    member_id = parse_member_id(body["userId"], "User ID and amount required")
    amount = parse_amount(body["amount"])

    url = await create_payment_link(member_id, amount, client=request.app[GATEWAY_KEY])
    return web.json_response({"paymentLink": url})


async def verify_payment(request: web.Request) -> web.Response:
    """POST /verify-payment: confirm a payment by reference."""
    body = await read_json(request)
    reference = body.get("reference")
    if not reference or not isinstance(reference, str) or not body.get("userId"):
        raise ValidationError("Transaction reference or User ID missing")

    member_id = parse_member_id(body["userId"], "Transaction reference or User ID missing")
    await request.app[RECONCILER_KEY].verify_payment(reference, member_id)
    return web.json_response({"success": True})


async def webhook(request: web.Request) -> web.Response:
    """POST /webhook: Paystack event delivery."""
    raw_body = await request.read()
    signature = request.headers.get(SIGNATURE_HEADER)

    outcome = await request.app[RECONCILER_KEY].handle_webhook(raw_body, signature)
    if outcome is PaymentOutcome.IGNORED:
        return web.json_response({"received": True})
    return web.json_response({"success": True, "message": _WEBHOOK_MESSAGES[outcome]})


async def get_member(request: web.Request) -> web.Response:
    """GET /member?userId=: full member record."""
    member_id = parse_member_id(request.query.get("userId"), "User ID required")
    member = await request.app[STORE_KEY].get(member_id)
    return web.json_response(member.to_dict())


async def health(request: web.Request) -> web.Response:
    """GET /health: database round trip."""
    await request.app[STORE_KEY].ping()
    return web.json_response({"status": "ok"})
