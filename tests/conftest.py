"""Shared fixtures: an in-memory record backend, mocked HTTP collaborators and
an ASGI client wired to a fully injected `ServiceContext`."""

import json
from collections import defaultdict
from types import SimpleNamespace

import httpx
import pytest
import pytest_asyncio

from payrelay.common.tasks import BackgroundRunner
from payrelay.services.notifications.service import NotificationDispatcher
from payrelay.services.payments.context import ServiceContext
from payrelay.services.payments.gateway import GatewayClient
from payrelay.services.record_store.backends import resolve_timestamps
from payrelay.services.record_store.service import RecordStore
from payrelay.services.tenants.models import RecordStoreBackend
from payrelay.services.tenants.registry import TenantRegistry


KEY_ID = "rzp_live_relaytests"
KEY_SECRET = "relay_secret_key"
WEBHOOK_SECRET = "relay_webhook_secret"
NOTIFY_URL = "https://hooks.test/notify"
STORE_SERVER_TIME = "<server-time>"

APPS = {
    "default": {
        "name": "Default App",
        "notifications": {"enabled": True, "provider": "custom", "customEndpoint": NOTIFY_URL},
        "recordStore": {"enabled": True},
        "testMode": {"autoDetect": True, "bookOnFailure": True},
    },
    "strict": {
        "name": "Strict App",
        "testMode": {"bookOnFailure": False},
    },
}


class InMemoryBackend:
    """Dict-backed stand-in for a record backend that records every call."""

    kind = RecordStoreBackend.TREE

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict]] = defaultdict(dict)
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()
        self._next_id = 0

    def _call(self, operation: str, collection: str) -> None:
        self.calls.append((operation, collection))
        if operation in self.fail_on:
            raise RuntimeError(f"{operation} unavailable")

    async def get(self, collection, record_id):
        self._call("get", collection)
        record = self.collections[collection].get(record_id)
        return None if record is None else {"id": record_id, **record}

    async def insert(self, collection, record, record_id=None):
        self._call("insert", collection)
        if record_id is None:
            self._next_id += 1
            record_id = f"rec_{self._next_id}"
        self.collections[collection][record_id] = resolve_timestamps(record, STORE_SERVER_TIME)
        return record_id

    async def update(self, collection, record_id, fields):
        self._call("update", collection)
        record = self.collections[collection].get(record_id)
        if record is None:
            return False
        record.update(resolve_timestamps(fields, STORE_SERVER_TIME))
        return True

    async def find_ids(self, collection, field, value):
        self._call("find_ids", collection)
        return [record_id for record_id, record in self.collections[collection].items() if record.get(field) == value]


class StaticStoreFactory:
    """Hands every tenant a `RecordStore` over the same in-memory backend."""

    def __init__(self, backend, on_failure=None) -> None:
        self.backend = backend
        self.on_failure = on_failure

    def for_tenant(self, tenant):
        return RecordStore(self.backend, tenant.record_store.collections, self.on_failure)


def seed_linked_records(backend: InMemoryBackend) -> None:
    backend.collections["consultations"]["cons_1"] = {
        "patientId": "user_1",
        "doctorId": "doc_1",
        "doctorName": "Dr. Rao",
        "paymentStatus": "unpaid",
        "notes": "bring reports",
    }
    backend.collections["users"]["admin_1"] = {"role": "admin"}
    backend.collections["users"]["user_1"] = {"role": "patient"}


@pytest.fixture
def backend():
    store_backend = InMemoryBackend()
    seed_linked_records(store_backend)
    return store_backend


@pytest.fixture
def harness(backend):
    """Context with recorded gateway/notification traffic and failure hook."""

    gateway_calls: list[dict] = []
    notify_calls: list[dict] = []
    failures: list[tuple[str, BaseException]] = []

    def gateway_handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        gateway_calls.append(body)
        return httpx.Response(
            200,
            json={
                "id": f"order_TEST{len(gateway_calls)}",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body["receipt"],
                "status": "created",
            },
        )

    def notify_handler(request: httpx.Request) -> httpx.Response:
        notify_calls.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    runner = BackgroundRunner(on_failure=lambda effect, exc: failures.append((effect, exc)))
    context = ServiceContext(
        registry=TenantRegistry(APPS),
        gateway=GatewayClient(
            httpx.AsyncClient(transport=httpx.MockTransport(gateway_handler)),
            key_id=KEY_ID,
            key_secret=KEY_SECRET,
            webhook_secret=WEBHOOK_SECRET,
            base_url="https://gateway.test/v1",
        ),
        stores=StaticStoreFactory(backend, on_failure=runner.on_failure),
        notifier=NotificationDispatcher(
            httpx.AsyncClient(transport=httpx.MockTransport(notify_handler)),
            on_failure=runner.on_failure,
        ),
        runner=runner,
    )
    return SimpleNamespace(
        context=context,
        backend=backend,
        gateway_calls=gateway_calls,
        notify_calls=notify_calls,
        failures=failures,
    )


@pytest_asyncio.fixture
async def client(harness):
    from payrelay.services.payments.main import create_app

    app = create_app(harness.context)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://relay.test") as http:
        yield http
    await harness.context.runner.drain()
