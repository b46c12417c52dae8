"""End-to-end behaviour of the HTTP surface with injected collaborators."""

import asyncio
import json

from payrelay.common.signatures import compute_payment_signature, compute_webhook_signature

from conftest import KEY_SECRET, NOTIFY_URL, WEBHOOK_SECRET, InMemoryBackend, seed_linked_records


def _verify_body(order_id="order_A1", payment_id="pay_live_1", signature=None, **extra):
    if signature is None:
        signature = compute_payment_signature(order_id, payment_id, KEY_SECRET)
    return {"orderId": order_id, "paymentId": payment_id, "signature": signature, **extra}


async def test_health_has_no_side_effects(client, harness):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True
    assert harness.backend.calls == []


async def test_create_order_then_verify(client, harness):
    """Order for ₹500, then a correctly signed verification records the attempt."""

    resp = await client.post("/orders", json={"amount": 50000, "currency": "INR"})
    assert resp.status_code == 200
    order = resp.json()["order"]
    assert order["amount"] == 50000
    assert order["status"] == "created"
    assert order["receipt"].startswith("receipt_")
    await harness.context.runner.drain()
    assert harness.backend.collections["orders"][order["id"]]["status"] == "created"

    resp = await client.post("/payments/verify", json=_verify_body(order["id"], "pay_Q1w2e3"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["paymentId"] == "pay_Q1w2e3"
    assert body["orderId"] == order["id"]
    assert body["verifiedAt"]
    await harness.context.runner.drain()

    (attempt,) = harness.backend.collections["payments"].values()
    assert attempt["status"] == "completed"
    assert attempt["verified"] is True
    assert attempt["amount"] == 50000
    assert attempt["createdAt"] == "<server-time>"
    assert harness.backend.collections["orders"][order["id"]]["status"] == "paid"


async def test_order_below_minimum_never_reaches_gateway(client, harness):
    resp = await client.post("/orders", json={"amount": 50, "currency": "INR"})
    assert resp.status_code == 400
    assert resp.json()["errorKind"] == "InvalidRequest"
    assert harness.gateway_calls == []


async def test_order_rejects_other_currency_and_non_numbers(client, harness):
    for payload in ({"amount": 50000, "currency": "USD"}, {"amount": "50000"}, {"amount": True}):
        resp = await client.post("/orders", json=payload)
        assert resp.status_code == 400
        assert resp.json()["errorKind"] == "InvalidRequest"
    assert harness.gateway_calls == []


async def test_order_notes_carry_tenant(client, harness):
    resp = await client.post(
        "/orders",
        json={"amount": 1000, "metadata": {"consultationId": "cons_1"}},
        headers={"X-App-Id": "strict"},
    )
    assert resp.status_code == 200
    (call,) = harness.gateway_calls
    assert call["notes"] == {"consultationId": "cons_1", "appId": "strict"}


async def test_missing_fields_touch_nothing(client, harness):
    """Invalid requests never reach the record store or the notifier."""

    body = _verify_body()
    del body["signature"]
    resp = await client.post("/payments/verify", json=body)
    await harness.context.runner.drain()

    assert resp.status_code == 400
    assert resp.json()["errorKind"] == "InvalidRequest"
    assert harness.backend.calls == []
    assert harness.notify_calls == []


async def test_success_updates_linked_record_and_notifies(client, harness):
    resp = await client.post("/payments/verify", json=_verify_body(linkedRecordId="cons_1", amount=50000))
    assert resp.json()["success"] is True
    await harness.context.runner.drain()

    record = harness.backend.collections["consultations"]["cons_1"]
    assert record["paymentStatus"] == "paid"
    assert record["paymentId"] == "pay_live_1"
    assert record["paidAt"] == "<server-time>"
    assert record["notes"] == "bring reports"
    (notification,) = harness.notify_calls
    assert notification["recipientIds"] == ["user_1", "doc_1", "admin_1"]
    assert notification["title"] == "Payment Successful"


async def test_soft_fail_keeps_booking(client, harness):
    """Invalid signature in test mode: booking kept with payment pending."""

    resp = await client.post(
        "/payments/verify",
        json=_verify_body(signature="0" * 64, linkedRecordId="cons_1", testModeOverride=True),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    assert body["recordBooked"] is True
    assert body["errorKind"] == "SignatureInvalid"
    await harness.context.runner.drain()

    assert harness.backend.collections["consultations"]["cons_1"]["paymentStatus"] == "pending"
    (attempt,) = harness.backend.collections["payments"].values()
    assert attempt["status"] == "failed"
    assert attempt["verified"] is False
    assert attempt["testMode"] is True
    (notification,) = harness.notify_calls
    assert "remains booked" in notification["body"]


async def test_soft_fail_from_test_payment_id(client, harness):
    resp = await client.post(
        "/payments/verify",
        json=_verify_body(payment_id="pay_test_42", signature="bad", linkedRecordId="cons_1"),
    )
    assert resp.json()["recordBooked"] is True


async def test_hard_fail_when_tenant_disables_booking(client, harness):
    resp = await client.post(
        "/payments/verify",
        json=_verify_body(signature="0" * 64, linkedRecordId="cons_1", testModeOverride=True),
        headers={"X-App-Id": "strict"},
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["errorKind"] == "SignatureInvalid"
    assert "recordBooked" not in body
    await harness.context.runner.drain()

    assert harness.backend.collections["consultations"]["cons_1"]["paymentStatus"] == "unpaid"
    assert harness.notify_calls == []
    (attempt,) = harness.backend.collections["payments"].values()
    assert attempt["status"] == "failed"


async def test_explicit_false_override_beats_auto_detect(client, harness):
    """An explicit `false` wins even for a test-pattern payment id."""

    resp = await client.post(
        "/payments/verify",
        json=_verify_body(payment_id="pay_test_42", signature="bad", testModeOverride=False),
    )
    assert resp.status_code == 400
    assert "recordBooked" not in resp.json()


async def test_persistence_failure_does_not_change_outcome(client, harness):
    harness.backend.fail_on = {"update", "insert"}
    resp = await client.post("/payments/verify", json=_verify_body(linkedRecordId="cons_1"))
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    await harness.context.runner.drain()

    effects = {effect for effect, _ in harness.failures}
    assert {"record_store.update", "record_store.insert"} <= effects
    assert "paymentStatus" in harness.backend.collections["consultations"]["cons_1"]
    assert harness.backend.collections["consultations"]["cons_1"]["paymentStatus"] == "unpaid"


async def test_legacy_gateway_field_names(client, harness):
    resp = await client.post(
        "/api/payment/verify",
        json={
            "razorpay_order_id": "order_A1",
            "razorpay_payment_id": "pay_live_1",
            "razorpay_signature": compute_payment_signature("order_A1", "pay_live_1", KEY_SECRET),
        },
    )
    assert resp.json()["success"] is True


def _webhook(event: str, entity_key: str, entity: dict, secret: str = WEBHOOK_SECRET):
    raw = json.dumps({"event": event, "payload": {entity_key: {"entity": entity}}}).encode("utf-8")
    return raw, {"X-Razorpay-Signature": compute_webhook_signature(raw, secret), "Content-Type": "application/json"}


async def test_webhook_capture_marks_linked_record_paid(client, harness):
    raw, headers = _webhook(
        "payment.captured",
        "payment",
        {"id": "pay_W1", "order_id": "order_W1", "amount": 20000, "notes": {"appId": "default", "linkedRecordId": "cons_1"}},
    )
    resp = await client.post("/payments/gateway-webhook", content=raw, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["outcome"] == "SUCCESS"
    await harness.context.runner.drain()

    assert harness.backend.collections["consultations"]["cons_1"]["paymentStatus"] == "paid"
    (attempt,) = harness.backend.collections["payments"].values()
    assert attempt["source"] == "webhook"
    assert attempt["amount"] == 20000


async def test_webhook_rejects_bad_signature(client, harness):
    raw, headers = _webhook("payment.captured", "payment", {"id": "pay_W1"}, secret="wrong")
    resp = await client.post("/payments/gateway-webhook", content=raw, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["errorKind"] == "SignatureInvalid"
    await harness.context.runner.drain()
    assert harness.backend.calls == []


async def test_webhook_unhandled_event_is_acknowledged(client, harness):
    raw, headers = _webhook("refund.created", "refund", {"id": "rfnd_1"})
    resp = await client.post("/payments/gateway-webhook", content=raw, headers=headers)
    assert resp.json() == {"received": True, "processed": False}


async def test_errors_do_not_leak_secrets(client, harness):
    resp = await client.post("/payments/verify", json=_verify_body(signature="bad"))
    assert KEY_SECRET not in resp.text
    assert NOTIFY_URL not in resp.text


class GatedBackend(InMemoryBackend):
    """Writes block until the test opens the gate."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def insert(self, collection, record, record_id=None):
        await self.gate.wait()
        return await super().insert(collection, record, record_id)

    async def update(self, collection, record_id, fields):
        await self.gate.wait()
        return await super().update(collection, record_id, fields)


async def test_response_does_not_wait_for_side_effects(client, harness):
    gated = GatedBackend()
    seed_linked_records(gated)
    harness.context.stores.backend = gated

    resp = await client.post("/payments/verify", json=_verify_body(linkedRecordId="cons_1", amount=50000))

    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert harness.context.runner.pending > 0
    assert "payments" not in gated.collections
    assert gated.collections["consultations"]["cons_1"]["paymentStatus"] == "unpaid"

    gated.gate.set()
    await harness.context.runner.drain()
    assert gated.collections["consultations"]["cons_1"]["paymentStatus"] == "paid"
    assert len(gated.collections["payments"]) == 1


async def test_signed_webhook_with_non_object_body_is_invalid_request(client, harness):
    """Well-signed but malformed events are rejected as client errors."""

    for raw in (b'["payment.captured"]', b'{"event": "payment.captured", "payload": "oops"}'):
        headers = {"X-Razorpay-Signature": compute_webhook_signature(raw, WEBHOOK_SECRET)}
        resp = await client.post("/payments/gateway-webhook", content=raw, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["errorKind"] == "InvalidRequest"
    assert harness.backend.calls == []
