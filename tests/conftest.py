"""Shared pytest fixtures for the test suite."""

import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from app.core.config import PaymentConfig, Settings
from app.services.razorpay import RazorpayClient
from app.services.reminder_store import InMemoryReminderStore

KEY_ID = "rzp_test_key"
KEY_SECRET = "s3cr3t"
WEBHOOK_SECRET = "whsec_test"


def sign(secret: str, message) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class TickingClock:
    """Returns a later timestamp on every call."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(minutes=1)
        return value


class SpyReminderStore(InMemoryReminderStore):
    """In-memory store that records every call made to it."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls: list[str] = []

    async def get(self, reminder_id):
        self.calls.append("get")
        return await super().get(reminder_id)

    async def mark_paid(self, reminder_id, *, payment_id, order_id, source):
        self.calls.append("mark_paid")
        return await super().mark_paid(reminder_id, payment_id=payment_id, order_id=order_id, source=source)

    async def link_order(self, order_id, reminder_id, details):
        self.calls.append("link_order")
        return await super().link_order(order_id, reminder_id, details)

    async def reminder_for_order(self, order_id):
        self.calls.append("reminder_for_order")
        return await super().reminder_for_order(order_id)

    async def webhook_event_seen(self, event_id):
        self.calls.append("webhook_event_seen")
        return await super().webhook_event_seen(event_id)

    async def record_webhook_event(self, event_id, event):
        self.calls.append("record_webhook_event")
        return await super().record_webhook_event(event_id, event)


class FakeRazorpay:
    """httpx handler standing in for the Razorpay Orders API."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": {"description": "Authentication failed"}})
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": "order_test_1",
                "entity": "order",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body["receipt"],
                "status": "created",
                "notes": body.get("notes", {}),
            },
        )

    @property
    def last_payload(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def fixed_time() -> datetime:
    return datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(fixed_time: datetime) -> TickingClock:
    return TickingClock(fixed_time)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        RAZORPAY_KEY_ID=KEY_ID,
        RAZORPAY_KEY_SECRET=KEY_SECRET,
        RAZORPAY_WEBHOOK_SECRET=WEBHOOK_SECRET,
    )


@pytest.fixture
def payment_config(settings: Settings) -> PaymentConfig:
    return PaymentConfig.from_settings(settings)


@pytest.fixture
def store(clock: TickingClock) -> SpyReminderStore:
    store = SpyReminderStore(clock=clock)
    store.add("rem_1", user_id="user_1", title="Electricity bill")
    return store


@pytest.fixture
def fake_razorpay() -> FakeRazorpay:
    return FakeRazorpay()


@pytest.fixture
def gateway(payment_config: PaymentConfig, fake_razorpay: FakeRazorpay) -> RazorpayClient:
    return RazorpayClient(payment_config, transport=httpx.MockTransport(fake_razorpay))


@pytest.fixture
def make_client(settings, store, gateway):
    from main import create_app

    def _make(app_settings: Settings = None, **overrides) -> TestClient:
        options = {"store": store, "gateway": gateway, "init_services": False, **overrides}
        app = create_app(app_settings or settings, **options)
        return TestClient(app, raise_server_exceptions=False)

    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
