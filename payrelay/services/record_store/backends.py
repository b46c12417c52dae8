"""Concrete record store backends.

All three expose the same async surface: `get`, `insert`, `update` and
`find_ids`. Backends raise on transport or database errors; the per-tenant
`RecordStore` adapter is what logs and swallows them.

Timestamp fields are written as `SERVER_TIMESTAMP`; each backend swaps the
sentinel for its own server-side time primitive so audit records never carry
this process's clock.
"""

import asyncio
from typing import Any, Protocol
from uuid import uuid4

import httpx
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from payrelay.services.record_store.models import StoredRecord
from payrelay.services.tenants.models import RecordStoreBackend


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()

# Firebase REST server value, also understood by custom endpoints.
TREE_SERVER_TIMESTAMP = {".sv": "timestamp"}


def resolve_timestamps(fields: dict[str, Any], server_value: Any) -> dict[str, Any]:
    return {key: server_value if value is SERVER_TIMESTAMP else value for key, value in fields.items()}


class RecordBackend(Protocol):
    kind: RecordStoreBackend

    async def get(self, collection: str, record_id: str) -> dict | None: ...

    async def insert(self, collection: str, record: dict, record_id: str | None = None) -> str: ...

    async def update(self, collection: str, record_id: str, fields: dict) -> bool: ...

    async def find_ids(self, collection: str, field: str, value: Any) -> list[str]: ...


class TreeBackend:
    """JSON document tree reached over the Firebase Realtime Database REST API."""

    kind = RecordStoreBackend.TREE

    def __init__(self, client: httpx.AsyncClient, database_url: str, auth_token: str | None = None) -> None:
        self.client = client
        self.database_url = database_url.rstrip("/")
        self.auth_token = auth_token

    def _url(self, *parts: str) -> str:
        return f"{self.database_url}/{'/'.join(parts)}.json"

    def _params(self, **extra: str) -> dict[str, str]:
        params = dict(extra)
        if self.auth_token:
            params["auth"] = self.auth_token
        return params

    async def get(self, collection: str, record_id: str) -> dict | None:
        resp = await self.client.get(self._url(collection, record_id), params=self._params())
        resp.raise_for_status()
        data = resp.json()
        if data is None:
            return None
        return {"id": record_id, **data}

    async def insert(self, collection: str, record: dict, record_id: str | None = None) -> str:
        body = resolve_timestamps(record, TREE_SERVER_TIMESTAMP)
        if record_id is None:
            # POST generates a chronologically ordered push id.
            resp = await self.client.post(self._url(collection), params=self._params(), json=body)
            resp.raise_for_status()
            return resp.json()["name"]
        resp = await self.client.put(self._url(collection, record_id), params=self._params(), json=body)
        resp.raise_for_status()
        return record_id

    async def update(self, collection: str, record_id: str, fields: dict) -> bool:
        # PATCH would create a missing node, so check existence first.
        exists = await self.client.get(self._url(collection, record_id), params=self._params(shallow="true"))
        exists.raise_for_status()
        if exists.json() is None:
            return False
        resp = await self.client.patch(
            self._url(collection, record_id),
            params=self._params(),
            json=resolve_timestamps(fields, TREE_SERVER_TIMESTAMP),
        )
        resp.raise_for_status()
        return True

    async def find_ids(self, collection: str, field: str, value: Any) -> list[str]:
        resp = await self.client.get(
            self._url(collection),
            params=self._params(orderBy=f'"{field}"', equalTo=f'"{value}"'),
        )
        resp.raise_for_status()
        return list((resp.json() or {}).keys())


class StructuredBackend:
    """Collections stored as rows of the `records` table via SQLAlchemy."""

    kind = RecordStoreBackend.STRUCTURED

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    @staticmethod
    def _server_now(db) -> str:
        value = db.execute(select(func.now())).scalar_one()
        return value.isoformat() if hasattr(value, "isoformat") else str(value)

    def _get(self, collection: str, record_id: str) -> dict | None:
        with self.session_factory() as db:
            row = db.get(StoredRecord, (collection, record_id))
            if row is None:
                return None
            return {"id": record_id, **row.data}

    def _insert(self, collection: str, record: dict, record_id: str | None) -> str:
        record_id = record_id or uuid4().hex
        with self.session_factory() as db:
            data = resolve_timestamps(record, self._server_now(db))
            db.merge(StoredRecord(collection=collection, record_id=record_id, data=data))
            db.commit()
        return record_id

    def _update(self, collection: str, record_id: str, fields: dict) -> bool:
        with self.session_factory() as db:
            row = db.get(StoredRecord, (collection, record_id))
            if row is None:
                return False
            # Reassign so SQLAlchemy sees the JSON column change.
            row.data = {**row.data, **resolve_timestamps(fields, self._server_now(db))}
            db.commit()
            return True

    def _find_ids(self, collection: str, field: str, value: Any) -> list[str]:
        with self.session_factory() as db:
            rows = db.execute(
                select(StoredRecord).where(StoredRecord.collection == collection).order_by(StoredRecord.record_id)
            ).scalars()
            return [row.record_id for row in rows if row.data.get(field) == value]

    async def get(self, collection: str, record_id: str) -> dict | None:
        return await asyncio.to_thread(self._get, collection, record_id)

    async def insert(self, collection: str, record: dict, record_id: str | None = None) -> str:
        return await asyncio.to_thread(self._insert, collection, record, record_id)

    async def update(self, collection: str, record_id: str, fields: dict) -> bool:
        return await asyncio.to_thread(self._update, collection, record_id, fields)

    async def find_ids(self, collection: str, field: str, value: Any) -> list[str]:
        return await asyncio.to_thread(self._find_ids, collection, field, value)


def _response_id(resp: httpx.Response) -> str:
    """Id echoed by a custom endpoint, or '' when it answers without a JSON object."""

    if not resp.content:
        return ""
    try:
        payload = resp.json()
    except ValueError:
        return ""
    if not isinstance(payload, dict):
        return ""
    return str(payload.get("id") or "")


class CustomHttpBackend:
    """Tenant-owned REST endpoint for orders and consultations.

    `GET/PATCH {endpoint}/{id}` address a record regardless of collection;
    inserts go to `POST {endpoint}/{collection}`.
    """

    kind = RecordStoreBackend.CUSTOM_HTTP

    def __init__(self, client: httpx.AsyncClient, endpoint: str) -> None:
        self.client = client
        self.endpoint = endpoint.rstrip("/")

    async def get(self, collection: str, record_id: str) -> dict | None:
        resp = await self.client.get(f"{self.endpoint}/{record_id}")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return {"id": record_id, **resp.json()}

    async def insert(self, collection: str, record: dict, record_id: str | None = None) -> str:
        body = resolve_timestamps(record, TREE_SERVER_TIMESTAMP)
        if record_id is not None:
            body["id"] = record_id
        resp = await self.client.post(f"{self.endpoint}/{collection}", json=body)
        resp.raise_for_status()
        if record_id is not None:
            return record_id
        return _response_id(resp)

    async def update(self, collection: str, record_id: str, fields: dict) -> bool:
        resp = await self.client.patch(
            f"{self.endpoint}/{record_id}",
            json=resolve_timestamps(fields, TREE_SERVER_TIMESTAMP),
        )
        if resp.status_code == 404:
            return False
        resp.raise_for_status()
        return True

    async def find_ids(self, collection: str, field: str, value: Any) -> list[str]:
        # The endpoint contract has no query surface.
        return []
