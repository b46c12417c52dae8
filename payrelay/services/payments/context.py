"""Process-wide collaborators, built once at startup and passed to the service."""

from dataclasses import dataclass

import httpx

from payrelay.common.config import CommonSettings, settings as default_settings
from payrelay.common.db import make_session_factory
from payrelay.common.tasks import BackgroundRunner
from payrelay.services.notifications.service import NotificationDispatcher
from payrelay.services.payments.gateway import GatewayClient
from payrelay.services.record_store.service import RecordStoreFactory
from payrelay.services.tenants.registry import TenantRegistry


@dataclass
class ServiceContext:
    registry: TenantRegistry
    gateway: GatewayClient
    stores: RecordStoreFactory
    notifier: NotificationDispatcher
    runner: BackgroundRunner
    http_client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        """Let in-flight side effects finish, then release HTTP connections."""

        await self.runner.drain()
        if self.http_client is not None:
            await self.http_client.aclose()


def build_context(settings: CommonSettings = default_settings) -> ServiceContext:
    """Wire real clients from environment settings."""

    runner = BackgroundRunner()
    http_client = httpx.AsyncClient(timeout=settings.record_store_timeout_seconds)
    session_factory = make_session_factory(settings.record_store_dsn) if settings.record_store_dsn else None
    return ServiceContext(
        registry=TenantRegistry.from_file(settings.apps_config_path),
        gateway=GatewayClient(
            http_client,
            key_id=settings.gateway_key_id,
            key_secret=settings.gateway_key_secret,
            webhook_secret=settings.gateway_webhook_secret,
            base_url=settings.gateway_base_url,
        ),
        stores=RecordStoreFactory(http_client, session_factory, on_failure=runner.on_failure),
        notifier=NotificationDispatcher(http_client, on_failure=runner.on_failure),
        runner=runner,
        http_client=http_client,
    )
