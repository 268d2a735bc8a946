"""HTTP tests for /api/payments/*."""

import json

import httpx

from app.core.config import PaymentConfig, Settings
from app.services.razorpay import RazorpayClient
from app.services.reminder_store import UnconfiguredReminderStore

from conftest import KEY_SECRET, WEBHOOK_SECRET, FakeRazorpay, sign

CAPTURED = b'{"event":"payment.captured","payload":{"payment":{"entity":{"id":"pay_2","order_id":"order_2"}}}}'


def _verify_body(**overrides) -> dict:
    body = {
        "razorpay_order_id": "order_1",
        "razorpay_payment_id": "pay_1",
        "razorpay_signature": sign(KEY_SECRET, "order_1|pay_1"),
        "reminderId": "rem_1",
    }
    body.update(overrides)
    return body


def _post_webhook(client, body: bytes, signature: str, **headers):
    return client.post(
        "/api/payments/webhook",
        content=body,
        headers={"content-type": "application/json", "x-razorpay-signature": signature, **headers},
    )


class TestCreateOrderRoute:
    def test_creates_order_in_minor_units(self, client, fake_razorpay):
        resp = client.post("/api/payments/create-order", json={"amount": 500, "currency": "INR"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["key"] == "rzp_test_key"
        assert body["order"]["id"] == "order_test_1"
        assert fake_razorpay.last_payload["amount"] == 50000
        assert fake_razorpay.last_payload["payment_capture"] == 1

    def test_default_currency_and_receipt(self, client, fake_razorpay):
        client.post("/api/payments/create-order", json={"amount": "12.5"})

        assert fake_razorpay.last_payload["currency"] == "INR"
        assert fake_razorpay.last_payload["amount"] == 1250
        assert fake_razorpay.last_payload["receipt"].startswith("rcpt_")

    def test_reminder_id_builds_receipt_and_link(self, client, store, fake_razorpay):
        client.post("/api/payments/create-order", json={"amount": 100, "reminderId": "rem_1"})

        assert fake_razorpay.last_payload["receipt"] == "receipt_rem_1"
        assert store.orders["order_test_1"]["reminder_id"] == "rem_1"

    def test_invalid_amount(self, client, fake_razorpay):
        for payload in ({}, {"amount": "abc"}, {"amount": 0}, {"amount": -10}):
            resp = client.post("/api/payments/create-order", json=payload)
            assert resp.status_code == 400
            assert resp.json() == {"success": False, "message": "Invalid amount"}

        assert fake_razorpay.requests == []

    def test_gateway_failure_is_generic_500(self, make_client, payment_config):
        gateway = RazorpayClient(payment_config, transport=httpx.MockTransport(FakeRazorpay(status_code=401)))
        client = make_client(gateway=gateway)

        resp = client.post("/api/payments/create-order", json={"amount": 100})

        assert resp.status_code == 500
        assert resp.json() == {"success": False, "message": "Failed to create order"}

    def test_unconfigured_gateway_is_500(self, make_client, fake_razorpay):
        gateway = RazorpayClient(PaymentConfig(), transport=httpx.MockTransport(fake_razorpay))
        client = make_client(gateway=gateway)

        resp = client.post("/api/payments/create-order", json={"amount": 100})

        assert resp.status_code == 500
        assert resp.json()["success"] is False
        assert fake_razorpay.requests == []


class TestVerifyRoute:
    def test_valid_signature_marks_paid(self, client, store):
        resp = client.post("/api/payments/verify", json=_verify_body())

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["validated"] is True
        assert body["updated"]["is_paid"] is True
        assert body["updated"]["paid_at"] is not None
        assert store.reminders["rem_1"]["is_paid"] is True

    def test_exact_signature_required(self, client):
        expected = sign(KEY_SECRET, "order_1|pay_1")
        tampered = expected[:-1] + ("1" if expected.endswith("0") else "0")

        resp = client.post("/api/payments/verify", json=_verify_body(razorpay_signature=tampered))

        assert resp.status_code == 400
        assert resp.json() == {"success": False, "validated": False, "message": "Invalid signature"}

    def test_missing_fields_never_touch_store(self, client, store):
        for field in ("razorpay_order_id", "razorpay_payment_id", "razorpay_signature", "reminderId"):
            body = _verify_body()
            del body[field]
            resp = client.post("/api/payments/verify", json=body)

            assert resp.status_code == 400
            assert resp.json() == {"success": False, "message": "Missing required fields"}

        assert store.calls == []

    def test_non_json_body_is_missing_fields(self, client, store):
        resp = client.post("/api/payments/verify", content=b"not json", headers={"content-type": "application/json"})

        assert resp.status_code == 400
        assert resp.json()["message"] == "Missing required fields"
        assert store.calls == []

    def test_repeat_verify_is_idempotent(self, client, store):
        first = client.post("/api/payments/verify", json=_verify_body())
        second = client.post("/api/payments/verify", json=_verify_body())

        assert second.status_code == 200
        assert second.json()["updated"]["is_paid"] is True
        assert second.json()["updated"]["paid_at"] == first.json()["updated"]["paid_at"]

    def test_unknown_reminder_distinct_from_bad_signature(self, client):
        resp = client.post("/api/payments/verify", json=_verify_body(reminderId="missing"))

        assert resp.status_code == 404
        assert resp.json() == {"success": False, "validated": True, "message": "Reminder not found"}

    def test_payment_replayed_for_another_reminder(self, client, store):
        store.add("rem_2", user_id="user_1")
        client.post("/api/payments/verify", json=_verify_body())

        resp = client.post("/api/payments/verify", json=_verify_body(reminderId="rem_2"))

        assert resp.status_code == 409
        assert resp.json() == {
            "success": False,
            "validated": True,
            "message": "Payment already applied to another reminder",
        }
        assert store.reminders["rem_2"]["is_paid"] is False

    def test_store_failure_is_500(self, make_client):
        client = make_client(store=UnconfiguredReminderStore())

        resp = client.post("/api/payments/verify", json=_verify_body())

        assert resp.status_code == 500
        assert resp.json() == {"success": False, "message": "Verification failed"}


class TestWebhookRoute:
    def test_valid_signature_over_raw_bytes(self, client):
        resp = _post_webhook(client, CAPTURED, sign(WEBHOOK_SECRET, CAPTURED))

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_signature_over_reserialised_copy_rejected(self, client):
        reserialised = json.dumps(json.loads(CAPTURED)).encode("utf-8")

        resp = _post_webhook(client, CAPTURED, sign(WEBHOOK_SECRET, reserialised))

        assert resp.status_code == 400
        assert resp.text == "invalid signature"

    def test_missing_signature_header(self, client):
        resp = client.post("/api/payments/webhook", content=CAPTURED, headers={"content-type": "application/json"})

        assert resp.status_code == 400
        assert resp.text == "invalid signature"

    def test_key_secret_fallback(self, make_client):
        app_settings = Settings(
            _env_file=None,
            RAZORPAY_KEY_ID="rzp_test_key",
            RAZORPAY_KEY_SECRET=KEY_SECRET,
            RAZORPAY_WEBHOOK_SECRET=None,
        )
        client = make_client(app_settings)

        resp = _post_webhook(client, CAPTURED, sign(KEY_SECRET, CAPTURED))

        assert resp.status_code == 200

    def test_malformed_signed_body_is_server_error(self, client):
        body = b'{"event": "payment.captured",'

        resp = _post_webhook(client, body, sign(WEBHOOK_SECRET, body))

        assert resp.status_code == 500
        assert resp.text == "server error"

    def test_captured_event_marks_linked_reminder(self, client, store):
        client.post("/api/payments/create-order", json={"amount": 100, "reminderId": "rem_1"})
        body = b'{"event":"payment.captured","payload":{"payment":{"entity":{"id":"pay_7","order_id":"order_test_1"}}}}'

        resp = _post_webhook(client, body, sign(WEBHOOK_SECRET, body), **{"x-razorpay-event-id": "evt_7"})

        assert resp.status_code == 200
        assert store.reminders["rem_1"]["is_paid"] is True
        assert store.reminders["rem_1"]["payment_id"] == "pay_7"
        assert "evt_7" in store.webhook_events

    def test_redelivered_event_acknowledged_once(self, client, store):
        body = b'{"event":"payment.captured","payload":{"payment":{"entity":{"id":"pay_8","order_id":"o","notes":{"reminder_id":"rem_1"}}}}}'
        signature = sign(WEBHOOK_SECRET, body)

        first = _post_webhook(client, body, signature, **{"x-razorpay-event-id": "evt_8"})
        second = _post_webhook(client, body, signature, **{"x-razorpay-event-id": "evt_8"})

        assert first.status_code == second.status_code == 200
        assert store.calls.count("mark_paid") == 1


class TestSystemRoutes:
    def test_root(self, client):
        resp = client.get("/")

        assert resp.status_code == 200
        assert resp.text.startswith("Backend is running")

    def test_health_without_database(self, client):
        resp = client.get("/health")

        assert resp.status_code == 503
        assert resp.json()["db"] == "not configured"

    def test_cors_allows_configured_origin(self, client):
        resp = client.options(
            "/api/payments/verify",
            headers={"origin": "http://localhost:8080", "access-control-request-method": "POST"},
        )

        assert resp.headers["access-control-allow-origin"] == "http://localhost:8080"
