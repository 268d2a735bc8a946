# services/reminder_store.py
"""
Reminder state store.

Only the payment side of a reminder is touched here: ``is_paid`` / ``paid_at``
plus the payment that caused the transition. The paid transition is
first-write-wins: once a reminder is paid, later calls (a retried verify, the
webhook for the same payment, a racing request) return the stored reminder
without rewriting ``paid_at``.

Collections:
    reminders/{reminder_id}       owned by the reminder subsystem
    payments/{payment_id}         ledger, written with the paid transition
    payment_orders/{order_id}     order -> reminder link from create-order
    webhook_events/{event_id}     webhook deliveries already processed
"""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from app.core.errors import NotConfiguredError, PersistenceError
from app.models.payment_model import PaymentRecord
from app.models.reminder_model import MarkPaidResult, Reminder
from app.utils.firebase import firestore_commit, firestore_run

logger = logging.getLogger("remindpay")

REMINDERS = "reminders"
PAYMENTS = "payments"
PAYMENT_ORDERS = "payment_orders"
WEBHOOK_EVENTS = "webhook_events"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _paid_fields(payment_id: str, order_id: Optional[str], source: str, now: datetime) -> Dict[str, Any]:
    return {
        "is_paid": True,
        "paid_at": now,
        "payment_id": payment_id,
        "order_id": order_id,
        "payment_source": source,
        "updated_at": now,
    }


def _to_reminder(reminder_id: str, data: Dict[str, Any]) -> Reminder:
    data = dict(data)
    data["_id"] = reminder_id
    data.pop("id", None)
    return Reminder(**data)


class ReminderStore(ABC):
    """Persistence port used by the payment handlers."""

    @abstractmethod
    async def get(self, reminder_id: str) -> Optional[Reminder]:
        """Load a reminder, or None if it does not exist."""

    @abstractmethod
    async def mark_paid(
        self,
        reminder_id: str,
        *,
        payment_id: str,
        order_id: Optional[str],
        source: str,
    ) -> Optional[MarkPaidResult]:
        """Atomically move a reminder to paid. Returns None if it does not exist."""

    @abstractmethod
    async def link_order(self, order_id: str, reminder_id: str, details: Dict[str, Any]) -> None:
        """Remember which reminder an order was created for."""

    @abstractmethod
    async def reminder_for_order(self, order_id: str) -> Optional[str]:
        """Reminder id linked to an order at creation time, if any."""

    @abstractmethod
    async def webhook_event_seen(self, event_id: str) -> bool:
        """True if a webhook delivery with this event id was fully processed."""

    @abstractmethod
    async def record_webhook_event(self, event_id: str, event: Optional[str]) -> None:
        """Mark a webhook delivery as processed."""


class FirestoreReminderStore(ReminderStore):
    def __init__(self, db, timeout: float = 10.0, clock: Callable[[], datetime] = utc_now):
        self._db = db
        self._timeout = timeout
        self._clock = clock

    # ---------------------------
    # Sync helpers (run in executor)
    # ---------------------------
    def _get_sync(self, reminder_id: str) -> Optional[Reminder]:
        snapshot = self._db.collection(REMINDERS).document(reminder_id).get(timeout=self._timeout)
        if not snapshot.exists:
            return None
        return _to_reminder(snapshot.id, snapshot.to_dict() or {})

    def _mark_paid_sync(
        self,
        reminder_id: str,
        payment_id: str,
        order_id: Optional[str],
        source: str,
    ) -> Optional[MarkPaidResult]:
        reminder_ref = self._db.collection(REMINDERS).document(reminder_id)
        ledger_ref = self._db.collection(PAYMENTS).document(payment_id)
        timeout = self._timeout
        clock = self._clock

        @firestore.transactional
        def apply(transaction):
            # Firestore requires all reads before writes inside a transaction
            snapshot = reminder_ref.get(transaction=transaction, timeout=timeout)
            ledger = ledger_ref.get(transaction=transaction, timeout=timeout)

            if not snapshot.exists:
                return None

            data = snapshot.to_dict() or {}
            if ledger.exists:
                owner = (ledger.to_dict() or {}).get("reminder_id")
                return MarkPaidResult(reminder=_to_reminder(snapshot.id, data), applied=False, paid_reminder_id=owner)
            if data.get("is_paid"):
                return MarkPaidResult(reminder=_to_reminder(snapshot.id, data), applied=False)

            now = clock()
            updates = _paid_fields(payment_id, order_id, source, now)
            transaction.update(reminder_ref, updates)

            record = PaymentRecord(
                payment_id=payment_id,
                order_id=order_id,
                reminder_id=reminder_id,
                source=source,
                recorded_at=now,
            )
            transaction.set(ledger_ref, record.model_dump())

            data.update(updates)
            return MarkPaidResult(reminder=_to_reminder(snapshot.id, data), applied=True)

        return apply(self._db.transaction())

    def _link_order_sync(self, order_id: str, reminder_id: str, details: Dict[str, Any]) -> None:
        doc = {**details, "order_id": order_id, "reminder_id": reminder_id, "created_at": self._clock()}
        self._db.collection(PAYMENT_ORDERS).document(order_id).set(doc, timeout=self._timeout)

    def _reminder_for_order_sync(self, order_id: str) -> Optional[str]:
        snapshot = self._db.collection(PAYMENT_ORDERS).document(order_id).get(timeout=self._timeout)
        if not snapshot.exists:
            return None
        return (snapshot.to_dict() or {}).get("reminder_id")

    def _webhook_event_seen_sync(self, event_id: str) -> bool:
        return self._db.collection(WEBHOOK_EVENTS).document(event_id).get(timeout=self._timeout).exists

    def _record_webhook_event_sync(self, event_id: str, event: Optional[str]) -> None:
        ref = self._db.collection(WEBHOOK_EVENTS).document(event_id)
        try:
            ref.create({"event_id": event_id, "event": event, "received_at": self._clock()}, timeout=self._timeout)
        except google_exceptions.AlreadyExists:
            logger.info(f"♻️ Webhook event {event_id} recorded concurrently")

    # ---------------------------
    # Async API
    # ---------------------------
    async def get(self, reminder_id: str) -> Optional[Reminder]:
        try:
            return await firestore_run(self._get_sync, reminder_id)
        except google_exceptions.GoogleAPICallError as e:
            raise PersistenceError("Failed to load reminder") from e

    async def mark_paid(self, reminder_id, *, payment_id, order_id, source):
        try:
            result = await firestore_commit(self._mark_paid_sync, reminder_id, payment_id, order_id, source)
        except google_exceptions.GoogleAPICallError as e:
            raise PersistenceError("Failed to update reminder") from e

        if result is not None:
            if result.conflict:
                logger.warning(
                    f"[security] Payment {payment_id} already applied to reminder {result.paid_reminder_id}, "
                    f"refused for {reminder_id}"
                )
            elif result.applied:
                logger.info(f"💰 Reminder {reminder_id} marked paid | payment={payment_id} | via {source}")
            else:
                logger.info(f"♻️ Reminder {reminder_id} already paid, payment {payment_id} not re-applied")
        return result

    async def link_order(self, order_id, reminder_id, details):
        try:
            await firestore_run(self._link_order_sync, order_id, reminder_id, details)
        except google_exceptions.GoogleAPICallError as e:
            raise PersistenceError("Failed to store order link") from e

    async def reminder_for_order(self, order_id):
        try:
            return await firestore_run(self._reminder_for_order_sync, order_id)
        except google_exceptions.GoogleAPICallError as e:
            raise PersistenceError("Failed to load order link") from e

    async def webhook_event_seen(self, event_id):
        try:
            return await firestore_run(self._webhook_event_seen_sync, event_id)
        except google_exceptions.GoogleAPICallError as e:
            raise PersistenceError("Failed to load webhook event") from e

    async def record_webhook_event(self, event_id, event):
        try:
            await firestore_commit(self._record_webhook_event_sync, event_id, event)
        except google_exceptions.GoogleAPICallError as e:
            raise PersistenceError("Failed to record webhook event") from e


class InMemoryReminderStore(ReminderStore):
    """Dict-backed store with the same semantics, for tests and local runs."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._lock = threading.Lock()
        self.reminders: Dict[str, Dict[str, Any]] = {}
        self.payments: Dict[str, PaymentRecord] = {}
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.webhook_events: Dict[str, Dict[str, Any]] = {}

    def add(self, reminder_id: str, **fields) -> None:
        with self._lock:
            self.reminders[reminder_id] = {"is_paid": False, "paid_at": None, **fields}

    async def get(self, reminder_id):
        with self._lock:
            data = self.reminders.get(reminder_id)
            return _to_reminder(reminder_id, data) if data is not None else None

    async def mark_paid(self, reminder_id, *, payment_id, order_id, source):
        with self._lock:
            data = self.reminders.get(reminder_id)
            if data is None:
                return None
            if payment_id in self.payments:
                owner = self.payments[payment_id].reminder_id
                return MarkPaidResult(reminder=_to_reminder(reminder_id, data), applied=False, paid_reminder_id=owner)
            if data.get("is_paid"):
                return MarkPaidResult(reminder=_to_reminder(reminder_id, data), applied=False)

            now = self._clock()
            data.update(_paid_fields(payment_id, order_id, source, now))
            self.payments[payment_id] = PaymentRecord(
                payment_id=payment_id,
                order_id=order_id,
                reminder_id=reminder_id,
                source=source,
                recorded_at=now,
            )
            return MarkPaidResult(reminder=_to_reminder(reminder_id, data), applied=True)

    async def link_order(self, order_id, reminder_id, details):
        with self._lock:
            self.orders[order_id] = {**details, "order_id": order_id, "reminder_id": reminder_id}

    async def reminder_for_order(self, order_id):
        with self._lock:
            return (self.orders.get(order_id) or {}).get("reminder_id")

    async def webhook_event_seen(self, event_id):
        with self._lock:
            return event_id in self.webhook_events

    async def record_webhook_event(self, event_id, event):
        with self._lock:
            self.webhook_events.setdefault(event_id, {"event_id": event_id, "event": event})


class UnconfiguredReminderStore(ReminderStore):
    """Placeholder used when Firestore credentials are missing at startup."""

    def _fail(self):
        raise NotConfiguredError("Database is not configured on server")

    async def get(self, reminder_id):
        self._fail()

    async def mark_paid(self, reminder_id, *, payment_id, order_id, source):
        self._fail()

    async def link_order(self, order_id, reminder_id, details):
        self._fail()

    async def reminder_for_order(self, order_id):
        self._fail()

    async def webhook_event_seen(self, event_id):
        self._fail()

    async def record_webhook_event(self, event_id, event):
        self._fail()
