# models/payment_model.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Literal, Optional
from datetime import datetime, timezone


class CreateOrderRequest(BaseModel):
    # Loosely typed on purpose: invalid amounts get the API's own 400 body
    amount: Any = None
    currency: str = "INR"
    receipt: Optional[str] = None
    reminder_id: Optional[str] = Field(default=None, alias="reminderId")

    model_config = ConfigDict(populate_by_name=True)


class VerifyPaymentRequest(BaseModel):
    """Checkout callback fields forwarded by the client. Untrusted until verified."""
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    reminder_id: Optional[str] = Field(default=None, alias="reminderId")

    model_config = ConfigDict(populate_by_name=True)

    def missing_fields(self) -> list[str]:
        fields = {
            "razorpay_order_id": self.razorpay_order_id,
            "razorpay_payment_id": self.razorpay_payment_id,
            "razorpay_signature": self.razorpay_signature,
            "reminderId": self.reminder_id,
        }
        return [name for name, value in fields.items() if not value]


class OrderResult(BaseModel):
    order: dict
    key: Optional[str] = None


class VerificationResult(BaseModel):
    validated: bool = True
    reminder_id: str
    payment_id: str
    updated: Optional[dict] = None
    not_found: bool = False
    already_paid: bool = False
    conflict: bool = False


class PaymentRecord(BaseModel):
    """Ledger entry keyed by Razorpay payment id; one per applied payment."""
    payment_id: str
    order_id: Optional[str] = None
    reminder_id: str
    source: Literal["verify", "webhook"]
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class WebhookResult(BaseModel):
    status: Literal["ok"] = "ok"
    event: Optional[str] = None
    duplicate: bool = False
    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    reminder_id: Optional[str] = None
    applied: bool = False
