# services/payment_service.py
"""
Razorpay payment flows, independent of the HTTP layer.

create_order    amount -> gateway order (+ order/reminder link)
verify_payment  client checkout callback -> signature check -> mark reminder paid
handle_webhook  gateway callback (raw bytes) -> signature check -> event dispatch

Both signature checks use HMAC-SHA256 but with different secrets: checkout
signatures are keyed by the key secret, webhooks by the webhook secret (falling
back to the key secret).
"""
import json
import logging
import math
import time
from typing import Any, Dict, Optional

from app.core.config import PaymentConfig
from app.core.errors import (
    AppError,
    MalformedPayloadError,
    SignatureMismatch,
    ValidationError,
)
from app.core.signature import payment_message, verify_signature
from app.models.payment_model import (
    OrderResult,
    VerificationResult,
    VerifyPaymentRequest,
    WebhookResult,
)
from app.services.razorpay import RazorpayClient
from app.services.reminder_store import ReminderStore

logger = logging.getLogger("remindpay")

CAPTURE_EVENTS = ("payment.captured", "order.paid")


# ========================================
# ORDER CREATION
# ========================================
def to_minor_units(amount: Any) -> int:
    """Major units -> smallest currency unit (500 INR -> 50000 paise)."""
    if isinstance(amount, bool) or amount is None or amount == "":
        raise ValidationError("Invalid amount")
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError("Invalid amount")
    if not math.isfinite(value) or value <= 0:
        raise ValidationError("Invalid amount")

    # Round half up: 0.125 -> 13 paise, 0.005 -> 1
    minor = math.floor(value * 100 + 0.5)
    if minor <= 0:
        raise ValidationError("Invalid amount")
    return minor


def build_receipt(receipt: Optional[str], reminder_id: Optional[str]) -> str:
    if receipt:
        return receipt
    if reminder_id:
        return f"receipt_{reminder_id}"
    return f"rcpt_{int(time.time() * 1000)}"


async def create_order(
    gateway: RazorpayClient,
    store: ReminderStore,
    amount: Any,
    currency: str = "INR",
    receipt: Optional[str] = None,
    reminder_id: Optional[str] = None,
) -> OrderResult:
    amount_minor = to_minor_units(amount)
    config = gateway.config.require_configured()

    currency = (currency or "INR").upper()
    receipt_label = build_receipt(receipt, reminder_id)
    notes = {"reminder_id": reminder_id} if reminder_id else None

    order = await gateway.create_order(amount_minor, currency, receipt_label, notes=notes)

    if reminder_id:
        # The order exists at the gateway either way; the link only helps webhooks
        try:
            await store.link_order(
                order["id"],
                reminder_id,
                {"amount": amount_minor, "currency": currency, "receipt": receipt_label},
            )
        except AppError as e:
            logger.error(f"Failed to link order {order['id']} to reminder {reminder_id}: {e}", exc_info=True)

    return OrderResult(order=order, key=config.key_id)


# ========================================
# CLIENT VERIFICATION
# ========================================
async def verify_payment(
    store: ReminderStore,
    config: PaymentConfig,
    claim: VerifyPaymentRequest,
) -> VerificationResult:
    # RECEIVED
    missing = claim.missing_fields()
    if missing:
        logger.info(f"Verify rejected, missing fields: {', '.join(missing)}")
        raise ValidationError("Missing required fields")

    config.require_configured()

    # VALIDATED
    message = payment_message(claim.razorpay_order_id, claim.razorpay_payment_id)
    if not verify_signature(config.signing_secret, message, claim.razorpay_signature):
        logger.warning(
            f"[security] Invalid payment signature | order={claim.razorpay_order_id} "
            f"payment={claim.razorpay_payment_id} reminder={claim.reminder_id}"
        )
        raise SignatureMismatch("Invalid signature")

    logger.info(f"🟢 Signature matched | order={claim.razorpay_order_id} payment={claim.razorpay_payment_id}")

    # APPLIED
    result = await store.mark_paid(
        claim.reminder_id,
        payment_id=claim.razorpay_payment_id,
        order_id=claim.razorpay_order_id,
        source="verify",
    )

    if result is None:
        logger.warning(f"Valid payment {claim.razorpay_payment_id} for unknown reminder {claim.reminder_id}")
        return VerificationResult(
            reminder_id=claim.reminder_id,
            payment_id=claim.razorpay_payment_id,
            not_found=True,
        )

    if result.conflict:
        return VerificationResult(
            reminder_id=claim.reminder_id,
            payment_id=claim.razorpay_payment_id,
            conflict=True,
        )

    return VerificationResult(
        reminder_id=claim.reminder_id,
        payment_id=claim.razorpay_payment_id,
        updated=result.reminder.model_dump(mode="json", by_alias=True),
        already_paid=not result.applied,
    )


# ========================================
# GATEWAY WEBHOOK
# ========================================
def _entity(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    section = payload.get(key)
    if not isinstance(section, dict):
        return {}
    entity = section.get("entity")
    return entity if isinstance(entity, dict) else {}


def _note(entity: Dict[str, Any], key: str) -> Optional[str]:
    notes = entity.get("notes")
    if isinstance(notes, dict) and notes.get(key):
        return str(notes[key])
    return None


async def _resolve_reminder(store: ReminderStore, payment: dict, order: dict, order_id: Optional[str]) -> Optional[str]:
    reminder_id = _note(payment, "reminder_id") or _note(order, "reminder_id")
    if reminder_id or not order_id:
        return reminder_id
    return await store.reminder_for_order(order_id)


async def handle_webhook(
    store: ReminderStore,
    config: PaymentConfig,
    raw_body: bytes,
    signature: Optional[str],
    event_id: Optional[str] = None,
) -> WebhookResult:
    # 1. Verify over the exact bytes received, before any parsing
    secret = config.webhook_signing_secret
    if not secret:
        logger.error("[security] Webhook received but no Razorpay secret is configured")
        raise SignatureMismatch("invalid signature")

    if not verify_signature(secret, raw_body, signature):
        logger.warning(f"[security] Invalid Razorpay webhook signature | event_id={event_id}")
        raise SignatureMismatch("invalid signature")

    # 2. Parse
    try:
        data = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"[webhook] Signed body is not valid JSON | event_id={event_id} | {e} | body={raw_body[:200]!r}")
        raise MalformedPayloadError("server error") from e
    if not isinstance(data, dict):
        logger.error(f"[webhook] Signed body is not a JSON object | event_id={event_id} | body={raw_body[:200]!r}")
        raise MalformedPayloadError("server error")

    event = data.get("event") if isinstance(data.get("event"), str) else None
    logger.info(f"✅ Razorpay webhook event: {event} | event_id={event_id}")

    # 3. Dedupe deliveries. Recorded only after effects succeed, so a failed
    # delivery is re-processed on Razorpay's retry.
    if event_id and await store.webhook_event_seen(event_id):
        logger.info(f"♻️ Webhook event {event_id} already processed")
        return WebhookResult(event=event, duplicate=True)

    result = await _dispatch(store, event, data)

    if event_id:
        await store.record_webhook_event(event_id, event)
    return result


async def _dispatch(store: ReminderStore, event: Optional[str], data: Dict[str, Any]) -> WebhookResult:
    payload = data.get("payload") if isinstance(data.get("payload"), dict) else {}
    payment = _entity(payload, "payment")
    order = _entity(payload, "order")
    payment_id = payment.get("id")
    order_id = payment.get("order_id") or order.get("id")
    payment_id = str(payment_id) if payment_id else None
    order_id = str(order_id) if order_id else None

    result = WebhookResult(event=event, payment_id=payment_id, order_id=order_id)

    if event in CAPTURE_EVENTS:
        logger.info(f"💰 Payment captured: {payment_id} order_id: {order_id}")
        if not payment_id:
            logger.warning(f"[webhook] {event} without payment entity, nothing to apply")
            return result

        reminder_id = await _resolve_reminder(store, payment, order, order_id)
        result.reminder_id = reminder_id
        if not reminder_id:
            logger.info(f"Payment {payment_id} has no linked reminder, acknowledged only")
            return result

        outcome = await store.mark_paid(reminder_id, payment_id=payment_id, order_id=order_id, source="webhook")
        if outcome is None:
            logger.warning(f"[webhook] Reminder {reminder_id} for payment {payment_id} not found")
        else:
            result.applied = outcome.applied

    elif event == "payment.failed":
        reason = payment.get("error_description") or payment.get("error_code")
        logger.warning(f"❌ Payment failed: {payment_id} order_id: {order_id} | {reason}")

    else:
        logger.info(f"Ignoring Razorpay event {event}")

    return result


__all__ = [
    "create_order",
    "verify_payment",
    "handle_webhook",
    "to_minor_units",
    "build_receipt",
]
