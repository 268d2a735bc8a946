# models/reminder_model.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional
from datetime import datetime


class Reminder(BaseModel):
    """
    A reminder document as far as payments are concerned.
    Fields owned by the reminder subsystem are carried through untouched.
    """
    id: str = Field(..., alias="_id")
    user_id: Optional[str] = None

    # PAYMENT STATE (is_paid only ever moves False -> True)
    is_paid: bool = False
    paid_at: Optional[datetime] = None

    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    payment_source: Optional[Literal["verify", "webhook"]] = None

    model_config = ConfigDict(populate_by_name=True, from_attributes=True, extra="allow")


class ReminderPaymentStatus(BaseModel):
    id: str
    is_paid: bool
    paid_at: Optional[datetime] = None


class MarkPaidResult(BaseModel):
    """
    Outcome of the paid transition. ``applied`` is False when it was already paid.
    ``paid_reminder_id`` is set when the payment is already on the ledger for a
    different reminder.
    """
    reminder: Reminder
    applied: bool
    paid_reminder_id: Optional[str] = None

    @property
    def conflict(self) -> bool:
        return self.paid_reminder_id is not None and self.paid_reminder_id != self.reminder.id
