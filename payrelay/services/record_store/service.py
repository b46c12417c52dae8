"""Per-tenant record store adapter and backend selection.

A backend is chosen once per tenant config and cached. Selection is a
configuration decision: a configured backend that then errors is logged and
swallowed per operation, never retried against a different backend.
"""

from typing import Any, Awaitable, Callable, TypeVar

import httpx
from sqlalchemy.orm import sessionmaker

from payrelay.common.config import settings
from payrelay.common.errors import PersistenceError
from payrelay.common.logging import logger
from payrelay.common.metrics import record_store_errors_total
from payrelay.common.tasks import FailureHook
from payrelay.services.record_store.backends import (
    SERVER_TIMESTAMP,
    CustomHttpBackend,
    RecordBackend,
    StructuredBackend,
    TreeBackend,
)
from payrelay.services.tenants.models import Collections, RecordStoreBackend, RecordStoreSettings, TenantConfig


T = TypeVar("T")

# Fields this service may write on an externally owned order/consultation.
LINKED_RECORD_FIELDS = frozenset({"paymentStatus", "paymentId", "paidAt", "updatedAt"})

# Where a linked record id is looked up, in order.
LINKED_RECORD_COLLECTIONS = ("consultations", "orders")

# Used when a tenant names no backend, or names one that is not configured.
BACKEND_PREFERENCE = (
    RecordStoreBackend.TREE,
    RecordStoreBackend.STRUCTURED,
    RecordStoreBackend.CUSTOM_HTTP,
)


class RecordStore:
    """Uniform get/insert/update over one tenant's backend.

    Collection arguments are logical names (`orders`, `payments`, ...) mapped
    through the tenant's `recordStore.collections`. No method raises on a
    backend failure.
    """

    def __init__(
        self,
        backend: RecordBackend | None,
        collections: Collections,
        on_failure: FailureHook | None = None,
    ) -> None:
        self.backend = backend
        self.collections = collections
        self.on_failure = on_failure

    @property
    def backend_name(self) -> str:
        return self.backend.kind.value if self.backend is not None else "disabled"

    def collection_name(self, logical: str) -> str:
        return getattr(self.collections, logical, logical)

    async def _run(self, operation: str, default: T, call: Callable[[RecordBackend], Awaitable[T]]) -> T:
        if self.backend is None:
            logger.info("record_store_disabled operation=%s", operation)
            return default
        try:
            return await call(self.backend)
        except Exception as exc:
            logger.error(
                "record_store_error backend=%s operation=%s error=%s",
                self.backend_name,
                operation,
                exc,
            )
            record_store_errors_total.labels(
                service=settings.service_name,
                backend=self.backend_name,
                operation=operation,
            ).inc()
            if self.on_failure is not None:
                self.on_failure(f"record_store.{operation}", PersistenceError(str(exc)))
            return default

    async def get(self, collection: str, record_id: str) -> dict | None:
        name = self.collection_name(collection)
        return await self._run("get", None, lambda backend: backend.get(name, record_id))

    async def insert(self, collection: str, record: dict, record_id: str | None = None) -> str | None:
        name = self.collection_name(collection)
        new_id = await self._run("insert", None, lambda backend: backend.insert(name, record, record_id))
        if new_id:
            logger.info("record_inserted backend=%s collection=%s id=%s", self.backend_name, name, new_id)
        return new_id

    async def update(self, collection: str, record_id: str, fields: dict) -> bool:
        name = self.collection_name(collection)
        updated = await self._run("update", False, lambda backend: backend.update(name, record_id, fields))
        if not updated and self.backend is not None:
            logger.warning("record_update_skipped backend=%s collection=%s id=%s", self.backend_name, name, record_id)
        return updated

    async def find_ids(self, collection: str, field: str, value: Any) -> list[str]:
        name = self.collection_name(collection)
        return await self._run("find_ids", [], lambda backend: backend.find_ids(name, field, value))

    async def find_linked_record(self, record_id: str) -> tuple[str, dict] | tuple[None, None]:
        """Locate an external record: consultations first, then orders."""

        for logical in LINKED_RECORD_COLLECTIONS:
            record = await self.get(logical, record_id)
            if record is not None:
                return logical, record
        return None, None

    async def update_linked_record(self, record_id: str, fields: dict) -> str | None:
        """Write the payment fields on an external record; return its collection."""

        outside = set(fields) - LINKED_RECORD_FIELDS
        if outside:
            raise ValueError(f"refusing to write fields on linked record: {sorted(outside)}")
        fields = {**fields, "updatedAt": SERVER_TIMESTAMP}
        logical, _ = await self.find_linked_record(record_id)
        if logical is None:
            logger.warning("linked_record_missing backend=%s id=%s", self.backend_name, record_id)
            return None
        if await self.update(logical, record_id, fields):
            logger.info(
                "linked_record_updated collection=%s id=%s payment_status=%s",
                self.collection_name(logical),
                record_id,
                fields.get("paymentStatus"),
            )
            return logical
        return None

    async def find_admin_ids(self) -> list[str]:
        return await self.find_ids("users", "role", "admin")


class RecordStoreFactory:
    """Builds (once) and caches the `RecordStore` for each tenant."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        session_factory: sessionmaker | None = None,
        on_failure: FailureHook | None = None,
    ) -> None:
        self.http_client = http_client
        self.session_factory = session_factory
        self.on_failure = on_failure
        self._stores: dict[str, RecordStore] = {}

    def available_backends(self, store_settings: RecordStoreSettings) -> dict[RecordStoreBackend, bool]:
        return {
            RecordStoreBackend.TREE: bool(store_settings.database_url),
            RecordStoreBackend.STRUCTURED: self.session_factory is not None,
            RecordStoreBackend.CUSTOM_HTTP: bool(store_settings.endpoint),
        }

    def select_backend(self, tenant: TenantConfig) -> RecordStoreBackend | None:
        """Pick the backend for a tenant, or None when nothing is configured."""

        store_settings = tenant.record_store
        if not store_settings.enabled:
            return None
        available = self.available_backends(store_settings)
        requested = store_settings.backend
        if requested is not None and available[requested]:
            return requested
        chosen = next((backend for backend in BACKEND_PREFERENCE if available[backend]), None)
        if requested is not None:
            logger.warning(
                "record_store_backend_unconfigured app_id=%s requested=%s using=%s",
                tenant.id,
                requested.value,
                chosen.value if chosen else "disabled",
            )
        return chosen

    def _build_backend(self, kind: RecordStoreBackend, store_settings: RecordStoreSettings) -> RecordBackend:
        builders: dict[RecordStoreBackend, Callable[[], RecordBackend]] = {
            RecordStoreBackend.TREE: lambda: TreeBackend(
                self.http_client, store_settings.database_url, store_settings.auth_token
            ),
            RecordStoreBackend.STRUCTURED: lambda: StructuredBackend(self.session_factory),
            RecordStoreBackend.CUSTOM_HTTP: lambda: CustomHttpBackend(self.http_client, store_settings.endpoint),
        }
        return builders[kind]()

    def for_tenant(self, tenant: TenantConfig) -> RecordStore:
        store = self._stores.get(tenant.id)
        if store is None:
            kind = self.select_backend(tenant)
            backend = self._build_backend(kind, tenant.record_store) if kind is not None else None
            store = RecordStore(backend, tenant.record_store.collections, self.on_failure)
            self._stores[tenant.id] = store
            logger.info("record_store_selected app_id=%s backend=%s", tenant.id, store.backend_name)
        return store
