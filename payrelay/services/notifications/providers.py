"""Push provider integrations.

Each provider takes already-resolved recipient ids and raises on transport
errors; the dispatcher decides what a failure means.
"""

import httpx

from payrelay.common.config import settings
from payrelay.common.logging import logger
from payrelay.services.tenants.models import NotificationSettings


class OneSignalProvider:
    """OneSignal REST API addressed by external user ids.

    OneSignal maps external ids to device subscriptions itself, so no token
    lookup happens here.
    """

    def __init__(self, client: httpx.AsyncClient, api_url: str | None = None) -> None:
        self.client = client
        self.api_url = api_url or settings.onesignal_api_url

    async def send(
        self,
        config: NotificationSettings,
        recipient_ids: list[str],
        title: str,
        body: str,
        data: dict,
    ) -> bool:
        app_id = config.onesignal.app_id or settings.onesignal_app_id
        rest_api_key = config.onesignal.rest_api_key or settings.onesignal_rest_api_key
        if not app_id or not rest_api_key:
            logger.warning("onesignal_not_configured app_id_set=%s api_key_set=%s", bool(app_id), bool(rest_api_key))
            return False
        resp = await self.client.post(
            self.api_url,
            headers={"Authorization": f"Basic {rest_api_key}"},
            json={
                "app_id": app_id,
                "include_external_user_ids": recipient_ids,
                "headings": {"en": title},
                "contents": {"en": body},
                "data": data,
            },
            timeout=settings.notification_timeout_seconds,
        )
        if resp.status_code >= 400:
            logger.error("onesignal_rejected status=%s body=%s", resp.status_code, resp.text)
            return False
        logger.info("onesignal_sent recipients=%s", resp.json().get("recipients", 0))
        return True


class CustomEndpointProvider:
    """Single JSON POST to a tenant-owned endpoint; non-2xx is not retried."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def send(
        self,
        config: NotificationSettings,
        recipient_ids: list[str],
        title: str,
        body: str,
        data: dict,
    ) -> bool:
        if not config.custom_endpoint:
            logger.warning("custom_notification_endpoint_missing")
            return False
        resp = await self.client.post(
            config.custom_endpoint,
            json={"recipientIds": recipient_ids, "title": title, "body": body, "data": data},
            timeout=settings.notification_timeout_seconds,
        )
        if not resp.is_success:
            logger.error("custom_notification_rejected status=%s", resp.status_code)
            return False
        logger.info("custom_notification_sent recipients=%s", len(recipient_ids))
        return True
