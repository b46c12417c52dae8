"""Payment notifications fanned out to a tenant's push provider.

Notification is a non-critical side effect: nothing in this module raises to
its caller. Provider failures are logged, counted and handed to the failure
hook.
"""

from typing import Any, Awaitable, Callable

import httpx

from payrelay.common.config import settings
from payrelay.common.errors import NotificationError
from payrelay.common.logging import logger
from payrelay.common.metrics import notification_failures_total, notifications_sent_total
from payrelay.common.tasks import FailureHook
from payrelay.services.notifications.providers import CustomEndpointProvider, OneSignalProvider
from payrelay.services.record_store.service import RecordStore
from payrelay.services.tenants.models import NotificationProvider, NotificationSettings, TenantConfig


PATIENT_ID_FIELDS = ("patientId", "userId")
PROVIDER_ID_FIELDS = ("doctorId", "providerId", "sellerId")
PROVIDER_NAME_FIELDS = ("doctorName", "providerName")

SendHandler = Callable[[NotificationSettings, list[str], str, str, dict], Awaitable[bool]]


def _first_present(record: dict, fields: tuple[str, ...]) -> Any:
    for field in fields:
        if record.get(field):
            return record[field]
    return None


def resolve_recipients(record: dict | None, admin_ids: list[str]) -> list[str]:
    """Patient, then provider, then admins; duplicates dropped, order kept."""

    record = record or {}
    candidates = [_first_present(record, PATIENT_ID_FIELDS), _first_present(record, PROVIDER_ID_FIELDS), *admin_ids]
    recipients: list[str] = []
    for candidate in candidates:
        if candidate and str(candidate) not in recipients:
            recipients.append(str(candidate))
    return recipients


def format_rupees(amount: int | None) -> str:
    return f"{amount / 100:.2f}" if amount else "0.00"


def build_payment_message(
    paid: bool,
    amount: int | None,
    record: dict | None,
    record_booked: bool = False,
) -> tuple[str, str]:
    """Return (title, body) for a payment outcome."""

    provider_name = _first_present(record or {}, PROVIDER_NAME_FIELDS) or "provider"
    amount_text = f"₹{format_rupees(amount)}"
    if paid:
        return "Payment Successful", f"Payment of {amount_text} received for consultation with {provider_name}"
    body = f"Payment of {amount_text} failed for consultation with {provider_name}."
    if record_booked:
        body += " Consultation remains booked."
    return "Payment Failed", body


class NotificationDispatcher:
    """Selects the tenant's provider and sends; never raises."""

    def __init__(self, http_client: httpx.AsyncClient, on_failure: FailureHook | None = None) -> None:
        self.on_failure = on_failure
        self.onesignal = OneSignalProvider(http_client)
        self.custom = CustomEndpointProvider(http_client)
        self._handlers: dict[NotificationProvider, SendHandler] = {
            NotificationProvider.ONESIGNAL: self.onesignal.send,
            NotificationProvider.CUSTOM: self.custom.send,
            NotificationProvider.NONE: self._send_disabled,
            NotificationProvider.FCM: self._send_reserved,
        }

    async def _send_disabled(self, config, recipient_ids, title, body, data) -> bool:
        logger.info("notifications_disabled provider=none")
        return False

    async def _send_reserved(self, config, recipient_ids, title, body, data) -> bool:
        logger.warning("notification_provider_unimplemented provider=%s", config.provider.value)
        return False

    def handler_for(self, provider: NotificationProvider) -> SendHandler:
        return self._handlers[provider]

    async def send(
        self,
        tenant: TenantConfig,
        recipient_ids: list[str],
        title: str,
        body: str,
        data: dict,
    ) -> bool:
        config = tenant.notifications
        if not config.enabled:
            logger.info("notifications_disabled app_id=%s", tenant.id)
            return False
        if not recipient_ids:
            logger.warning("notification_skipped_no_recipients app_id=%s", tenant.id)
            return False
        provider = config.provider
        try:
            sent = await self.handler_for(provider)(config, recipient_ids, title, body, data)
        except Exception as exc:
            logger.error("notification_failed app_id=%s provider=%s error=%s", tenant.id, provider.value, exc)
            notification_failures_total.labels(service=settings.service_name, provider=provider.value).inc()
            if self.on_failure is not None:
                self.on_failure("notification.send", NotificationError(str(exc)))
            return False
        if sent:
            notifications_sent_total.labels(service=settings.service_name, provider=provider.value).inc()
        return sent

    async def notify_payment(
        self,
        tenant: TenantConfig,
        store: RecordStore,
        linked_record_id: str | None,
        payment_status: str,
        amount: int | None,
        payment_id: str,
        record_booked: bool = False,
    ) -> bool:
        """Resolve recipients from the linked record and send the outcome."""

        try:
            record = None
            if linked_record_id:
                _, record = await store.find_linked_record(linked_record_id)
            admin_ids = await store.find_admin_ids()
            recipients = resolve_recipients(record, admin_ids)
            paid = payment_status in ("paid", "completed")
            title, body = build_payment_message(paid, amount, record, record_booked)
            data = {
                **(record or {}),
                "type": "payment_success" if paid else "payment_failed",
                "consultationId": linked_record_id,
                "orderId": linked_record_id,
                "paymentId": payment_id,
                "amount": amount,
                "amountInRupees": format_rupees(amount),
                "status": payment_status,
                "recordBooked": record_booked,
            }
        except Exception as exc:
            logger.error("notification_prepare_failed app_id=%s error=%s", tenant.id, exc)
            if self.on_failure is not None:
                self.on_failure("notification.prepare", NotificationError(str(exc)))
            return False
        return await self.send(tenant, recipients, title, body, data)
