from fastapi import APIRouter, Depends

from app.core.auth import get_current_user
from app.core.deps import get_store
from app.core.errors import ForbiddenError, NotFoundError
from app.models.reminder_model import ReminderPaymentStatus
from app.models.user_model import User
from app.services.reminder_store import ReminderStore

router = APIRouter(prefix="/reminders", tags=["Reminders"])


@router.get("/{reminder_id}/payment")
async def get_payment_status(
    reminder_id: str,
    user: User = Depends(get_current_user),
    store: ReminderStore = Depends(get_store),
):
    """Read-only payment state of a reminder owned by the caller."""
    reminder = await store.get(reminder_id)
    if reminder is None:
        raise NotFoundError("Reminder not found")

    if reminder.user_id and reminder.user_id != user.uid:
        raise ForbiddenError("Unauthorized")

    status = ReminderPaymentStatus(id=reminder.id, is_paid=reminder.is_paid, paid_at=reminder.paid_at)
    return {"success": True, "reminder": status.model_dump(mode="json")}
