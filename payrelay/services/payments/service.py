"""Payment orchestration.

Decides the outcome of each verification synchronously, then hands the side
effects (attempt record, linked-record update, order status, notification) to
the background runner. Responses never wait on those side effects and no
side-effect failure can change a decision already made.
"""

import json
import random
import string
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from time import time

from payrelay.common.config import settings
from payrelay.common.errors import InvalidRequestError, SignatureInvalidError
from payrelay.common.logging import app_id_ctx, logger, payment_id_ctx
from payrelay.common.metrics import orders_created_total, payment_verifications_total, webhook_events_total
from payrelay.common.signatures import (
    require_payment_fields,
    verify_payment_signature,
    verify_webhook_signature,
)
from payrelay.common.state_machine import VerificationState, decide_outcome, validate_transition
from payrelay.common.tracing import tracer
from payrelay.services.payments.context import ServiceContext
from payrelay.services.payments.models import Order, PaymentAttempt
from payrelay.services.payments.schemas import OrderCreateRequest, PaymentVerifyRequest
from payrelay.services.payments.test_mode import is_test_mode
from payrelay.services.record_store.backends import SERVER_TIMESTAMP
from payrelay.services.record_store.service import RecordStore
from payrelay.services.tenants.models import TenantConfig


SIGNATURE_INVALID_MESSAGE = "Invalid payment signature"
RECORD_BOOKED_MESSAGE = "Payment verification failed in test mode. The booking has been kept with payment pending."


@dataclass(frozen=True)
class VerificationResult:
    """Terminal decision for one verification, ready to render."""

    state: VerificationState
    payment_id: str
    order_id: str | None
    verified_at: str
    test_mode: bool = False

    @property
    def status_code(self) -> int:
        return 400 if self.state is VerificationState.HARD_FAIL else 200

    def to_body(self) -> dict:
        if self.state is VerificationState.SUCCESS:
            return {
                "success": True,
                "message": "Payment verified successfully",
                "paymentId": self.payment_id,
                "orderId": self.order_id,
                "verifiedAt": self.verified_at,
            }
        body = {
            "success": False,
            "error": SIGNATURE_INVALID_MESSAGE,
            "errorKind": SignatureInvalidError.kind.value,
            "paymentId": self.payment_id,
        }
        if self.state is VerificationState.TEST_MODE_SOFT_FAIL:
            body["recordBooked"] = True
            body["message"] = RECORD_BOOKED_MESSAGE
        return body


def generate_receipt() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"receipt_{int(time() * 1000)}_{suffix}"


def validate_order_amount(amount) -> int:
    """Return the amount as int minor units or raise `InvalidRequestError`."""

    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise InvalidRequestError("Amount must be a number in minor currency units")
    if isinstance(amount, float):
        if not amount.is_integer():
            raise InvalidRequestError("Amount must be a whole number of minor currency units")
        amount = int(amount)
    if amount < settings.min_order_amount:
        raise InvalidRequestError(
            f"Amount must be at least {settings.min_order_amount} minor units (₹{settings.min_order_amount / 100:g})"
        )
    return amount


def _webhook_entity(payload: dict, key: str) -> dict:
    wrapper = payload.get(key)
    entity = wrapper.get("entity") if isinstance(wrapper, dict) else None
    if entity is None:
        return {}
    if not isinstance(entity, dict):
        raise InvalidRequestError(f"Webhook {key} entity must be a JSON object")
    return entity


class PaymentService:
    """Owns order creation, signature verification and outcome fan-out."""

    def __init__(self, context: ServiceContext) -> None:
        self.context = context

    @property
    def runner(self):
        return self.context.runner

    def tenant_for(self, tenant_id: str | None) -> TenantConfig:
        tenant = self.context.registry.get_config(tenant_id)
        app_id_ctx.set(tenant.id)
        return tenant

    def store_for(self, tenant: TenantConfig) -> RecordStore:
        return self.context.stores.for_tenant(tenant)

    async def create_order(self, req: OrderCreateRequest, tenant: TenantConfig) -> Order:
        """Validate, create the gateway order, and persist it in the background."""

        amount = validate_order_amount(req.amount)
        currency = (req.currency or "").upper()
        if currency != settings.supported_currency:
            raise InvalidRequestError(f"Currently only {settings.supported_currency} currency is supported")
        receipt = req.receipt or generate_receipt()
        notes = {**req.metadata, "appId": tenant.id}

        entity = await self.context.gateway.create_order(amount, currency, receipt, notes)
        order = Order(
            external_order_id=entity["id"],
            amount=int(entity.get("amount", amount)),
            currency=entity.get("currency", currency),
            receipt=entity.get("receipt") or receipt,
            status="created",
            linked_record_id=req.metadata.get("linkedRecordId") or req.metadata.get("consultationId"),
            metadata=req.metadata,
        )
        orders_created_total.labels(service=settings.service_name).inc()
        logger.info("order_created order_id=%s amount=%s currency=%s", order.external_order_id, amount, currency)

        store = self.store_for(tenant)
        self.runner.submit(
            "order.insert",
            store.insert("orders", order.to_record(), record_id=order.external_order_id),
        )
        return order

    def _decide(self, signature_valid: bool, tenant: TenantConfig, test_mode: bool) -> VerificationState:
        state = VerificationState.RECEIVED
        validate_transition(state, VerificationState.SIGNATURE_CHECKED)
        state = VerificationState.SIGNATURE_CHECKED
        outcome = decide_outcome(signature_valid, test_mode, tenant.test_mode.book_on_failure)
        validate_transition(state, outcome)
        payment_verifications_total.labels(
            service=settings.service_name,
            app_id=tenant.id,
            outcome=outcome.value,
        ).inc()
        return outcome

    async def verify_payment(self, req: PaymentVerifyRequest, tenant: TenantConfig) -> VerificationResult:
        """Check the checkout signature and schedule the outcome's side effects."""

        payment_id_ctx.set(req.payment_id or "")
        require_payment_fields(req.order_id, req.payment_id, req.signature)
        with tracer.start_as_current_span("payments.verify"):
            signature_valid = verify_payment_signature(
                req.order_id,
                req.payment_id,
                req.signature,
                self.context.gateway.key_secret,
            )
            test_mode = is_test_mode(
                tenant,
                req.payment_id,
                self.context.gateway.uses_test_credentials,
                req.test_mode_override,
            )
            outcome = self._decide(signature_valid, tenant, test_mode)

        linked_record_id = req.resolved_linked_record_id()
        logger.info(
            "payment_verification outcome=%s order_id=%s linked_record_id=%s test_mode=%s",
            outcome.value,
            req.order_id,
            linked_record_id,
            test_mode,
        )
        attempt = PaymentAttempt(
            external_payment_id=req.payment_id,
            external_order_id=req.order_id,
            signature=req.signature,
            amount=req.amount,
            status="completed" if outcome is VerificationState.SUCCESS else "failed",
            verified=signature_valid,
            linked_record_id=linked_record_id,
            test_mode=test_mode,
        )
        self.runner.submit("payment.fan_out", self._fan_out(outcome, tenant, attempt))
        return VerificationResult(
            state=outcome,
            payment_id=req.payment_id,
            order_id=req.order_id,
            verified_at=datetime.now(timezone.utc).isoformat(),
            test_mode=test_mode,
        )

    async def _resolve_amount(self, store: RecordStore, attempt: PaymentAttempt) -> PaymentAttempt:
        if attempt.amount is not None or not attempt.external_order_id:
            return attempt
        order = await store.get("orders", attempt.external_order_id)
        if not order or order.get("amount") is None:
            return attempt
        return replace(attempt, amount=order["amount"])

    async def _fan_out(self, outcome: VerificationState, tenant: TenantConfig, attempt: PaymentAttempt) -> None:
        """Complete the attempt record, then launch the independent side effects."""

        store = self.store_for(tenant)
        attempt = await self._resolve_amount(store, attempt)
        notifier = self.context.notifier
        linked_id = attempt.linked_record_id

        self.runner.submit("payment_attempt.insert", store.insert("payments", attempt.to_record()))

        if outcome is VerificationState.SUCCESS:
            if linked_id:
                self.runner.submit(
                    "linked_record.update",
                    store.update_linked_record(
                        linked_id,
                        {"paymentStatus": "paid", "paymentId": attempt.external_payment_id, "paidAt": SERVER_TIMESTAMP},
                    ),
                )
            if attempt.external_order_id:
                self.runner.submit(
                    "order.mark_paid",
                    store.update("orders", attempt.external_order_id, {"status": "paid", "updatedAt": SERVER_TIMESTAMP}),
                )
            self.runner.submit(
                "notification.send",
                notifier.notify_payment(tenant, store, linked_id, "paid", attempt.amount, attempt.external_payment_id),
            )
        elif outcome is VerificationState.TEST_MODE_SOFT_FAIL:
            if linked_id:
                # Pending, not failed: the booking stays in place.
                self.runner.submit(
                    "linked_record.update",
                    store.update_linked_record(
                        linked_id,
                        {"paymentStatus": "pending", "paymentId": attempt.external_payment_id},
                    ),
                )
            self.runner.submit(
                "notification.send",
                notifier.notify_payment(
                    tenant,
                    store,
                    linked_id,
                    "failed",
                    attempt.amount,
                    attempt.external_payment_id,
                    record_booked=True,
                ),
            )

    async def handle_webhook(self, raw_body: bytes, signature: str | None) -> dict:
        """Verify a gateway webhook and feed it through the same outcome logic."""

        secret = self.context.gateway.webhook_secret
        if not secret:
            logger.warning("webhook_secret_unset skipping verification and processing")
            return {"received": True, "processed": False}
        if not signature:
            raise SignatureInvalidError("Webhook signature missing")
        if not verify_webhook_signature(raw_body, signature, secret):
            raise SignatureInvalidError("Invalid webhook signature")
        try:
            event = json.loads(raw_body)
        except ValueError as exc:
            raise InvalidRequestError("Webhook body is not valid JSON") from exc
        if not isinstance(event, dict):
            raise InvalidRequestError("Webhook body must be a JSON object")

        event_type = event.get("event", "")
        webhook_events_total.labels(service=settings.service_name, event_type=event_type or "unknown").inc()
        payload = event.get("payload") or {}
        if not isinstance(payload, dict):
            raise InvalidRequestError("Webhook payload must be a JSON object")
        logger.info("webhook_received event=%s", event_type)

        if event_type in ("payment.captured", "payment.failed"):
            entity = _webhook_entity(payload, "payment")
            if not entity.get("id"):
                raise InvalidRequestError("Webhook payment entity has no id")
            notes = entity.get("notes") if isinstance(entity.get("notes"), dict) else {}
            tenant = self.tenant_for(notes.get("appId"))
            payment_id_ctx.set(entity["id"])
            captured = event_type == "payment.captured"
            override = notes.get("testMode") if isinstance(notes.get("testMode"), bool) else None
            test_mode = is_test_mode(tenant, entity["id"], self.context.gateway.uses_test_credentials, override)
            outcome = self._decide(captured, tenant, test_mode)
            attempt = PaymentAttempt(
                external_payment_id=entity["id"],
                external_order_id=entity.get("order_id"),
                signature=signature,
                amount=entity.get("amount"),
                status="completed" if outcome is VerificationState.SUCCESS else "failed",
                verified=captured,
                linked_record_id=notes.get("linkedRecordId") or notes.get("consultationId"),
                test_mode=test_mode,
                source="webhook",
            )
            self.runner.submit("payment.fan_out", self._fan_out(outcome, tenant, attempt))
            return {"received": True, "processed": True, "outcome": outcome.value}

        if event_type == "order.paid":
            entity = _webhook_entity(payload, "order")
            notes = entity.get("notes") if isinstance(entity.get("notes"), dict) else {}
            tenant = self.tenant_for(notes.get("appId"))
            if entity.get("id"):
                store = self.store_for(tenant)
                self.runner.submit(
                    "order.mark_paid",
                    store.update("orders", entity["id"], {"status": "paid", "updatedAt": SERVER_TIMESTAMP}),
                )
            return {"received": True, "processed": True}

        logger.info("webhook_unhandled event=%s", event_type)
        return {"received": True, "processed": False}
