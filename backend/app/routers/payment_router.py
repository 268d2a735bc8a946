# routers/payment_router.py
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError as PydanticValidationError
import json
import logging

from app.core.config import PaymentConfig
from app.core.deps import get_gateway, get_payment_config, get_store
from app.core.errors import (
    AppError,
    MalformedPayloadError,
    SignatureMismatch,
    ValidationError,
)
from app.models.payment_model import CreateOrderRequest, VerifyPaymentRequest
from app.services import payment_service
from app.services.razorpay import RazorpayClient
from app.services.reminder_store import ReminderStore

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = logging.getLogger("remindpay")


def _failure(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, **extra})


async def _json_body(request: Request) -> dict:
    """Parsed JSON object body; anything else reads as empty."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}


# ========================================
# CREATE ORDER
# ========================================
@router.post("/create-order")
async def create_order(
    request: Request,
    gateway: RazorpayClient = Depends(get_gateway),
    store: ReminderStore = Depends(get_store),
):
    try:
        payload = CreateOrderRequest.model_validate(await _json_body(request))
    except PydanticValidationError:
        return _failure(status.HTTP_400_BAD_REQUEST, "Invalid request body")

    try:
        result = await payment_service.create_order(
            gateway,
            store,
            payload.amount,
            currency=payload.currency,
            receipt=payload.receipt,
            reminder_id=payload.reminder_id,
        )
    except ValidationError as e:
        return _failure(e.status_code, e.message)
    except AppError as e:
        logger.error(f"❌ Razorpay create-order error: {e!r} (cause: {e.__cause__!r})")
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to create order")

    return {"success": True, "order": result.order, "key": result.key}


# ========================================
# VERIFY CHECKOUT SIGNATURE
# ========================================
@router.post("/verify")
async def verify_payment(
    request: Request,
    store: ReminderStore = Depends(get_store),
    config: PaymentConfig = Depends(get_payment_config),
):
    try:
        claim = VerifyPaymentRequest.model_validate(await _json_body(request))
    except PydanticValidationError:
        return _failure(status.HTTP_400_BAD_REQUEST, "Missing required fields")

    try:
        result = await payment_service.verify_payment(store, config, claim)
    except SignatureMismatch:
        return _failure(status.HTTP_400_BAD_REQUEST, "Invalid signature", validated=False)
    except ValidationError as e:
        return _failure(e.status_code, e.message)
    except AppError as e:
        logger.error(f"Payment verify error: {e!r} (cause: {e.__cause__!r})")
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Verification failed")

    if result.not_found:
        return _failure(status.HTTP_404_NOT_FOUND, "Reminder not found", validated=True)
    if result.conflict:
        return _failure(status.HTTP_409_CONFLICT, "Payment already applied to another reminder", validated=True)

    return {"success": True, "validated": True, "updated": result.updated}


# ========================================
# RAZORPAY WEBHOOK (raw body)
# ========================================
@router.post("/webhook")
async def razorpay_webhook(
    request: Request,
    store: ReminderStore = Depends(get_store),
    config: PaymentConfig = Depends(get_payment_config),
):
    # Signature covers the exact bytes sent; never parse before verifying
    body = await request.body()
    signature = request.headers.get("x-razorpay-signature")
    event_id = request.headers.get("x-razorpay-event-id")

    try:
        await payment_service.handle_webhook(store, config, body, signature, event_id=event_id)
    except SignatureMismatch:
        return PlainTextResponse("invalid signature", status_code=status.HTTP_400_BAD_REQUEST)
    except MalformedPayloadError:
        return PlainTextResponse("server error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    except Exception as e:
        logger.error(f"Webhook error: {e!r}", exc_info=True)
        return PlainTextResponse("server error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return {"status": "ok"}
