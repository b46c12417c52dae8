"""Tenant resolution and config lookup.

The apps file is a JSON object of tenant id -> partial config (camelCase
keys). Every entry is overlaid on the `default` entry when the registry is
built, so lookups always return complete configs.
"""

import json
from pathlib import Path
from typing import Any, Mapping

from pydantic import ValidationError

from payrelay.common.config import settings
from payrelay.common.logging import logger
from payrelay.services.tenants.models import TenantConfig


APP_ID_HEADER = "X-App-Id"
APP_ID_PARAM = "appId"
DEFAULT_TENANT_ID = "default"

# Nested objects merged key-by-key; each maps to its own nested children.
MERGED_SECTIONS: dict[str, tuple[str, ...]] = {
    "notifications": ("onesignal",),
    "recordStore": ("collections",),
    "testMode": (),
}

FALLBACK_APPS: dict[str, dict[str, Any]] = {
    DEFAULT_TENANT_ID: {
        "name": "Default App",
        "notifications": {"enabled": True, "provider": "onesignal", "onesignal": {}},
        "recordStore": {
            "enabled": True,
            "collections": {
                "orders": "orders",
                "consultations": "consultations",
                "payments": "payments",
                "users": "users",
            },
        },
        "testMode": {"autoDetect": True, "bookOnFailure": True},
    }
}


def resolve_tenant_id(
    headers: Mapping[str, str],
    query_params: Mapping[str, str],
    body: Mapping[str, Any] | None,
) -> str | None:
    """Find the tenant id: header, then query, then body metadata, then body."""

    body = body if isinstance(body, Mapping) else {}
    metadata = body.get("metadata")
    metadata = metadata if isinstance(metadata, Mapping) else {}
    candidates = (
        headers.get(APP_ID_HEADER) or headers.get(APP_ID_HEADER.lower()),
        query_params.get(APP_ID_PARAM),
        metadata.get(APP_ID_PARAM),
        body.get(APP_ID_PARAM),
    )
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


def _as_mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _overlay(base: Any, override: Any) -> dict:
    return {**_as_mapping(base), **_as_mapping(override)}


def merge_config_dicts(default: Mapping[str, Any], partial: Mapping[str, Any]) -> dict[str, Any]:
    """Shallow per-key overlay of `partial` on `default` at each merged level.

    An omitted section inherits the default's section whole; a section that is
    present only replaces the keys it names. Values inside a key are never
    merged recursively.
    """

    merged = _overlay(default, partial)
    for section, children in MERGED_SECTIONS.items():
        base_section = _as_mapping(default.get(section))
        override_section = _as_mapping(partial.get(section))
        combined = _overlay(base_section, override_section)
        for child in children:
            combined[child] = _overlay(base_section.get(child), override_section.get(child))
        merged[section] = combined
    return merged


class TenantRegistry:
    """Immutable map of tenant id -> merged `TenantConfig`."""

    def __init__(self, raw_configs: Mapping[str, Mapping[str, Any]]) -> None:
        if not raw_configs:
            raw_configs = FALLBACK_APPS
        self._default_raw = dict(_as_mapping(raw_configs.get(DEFAULT_TENANT_ID)))
        self._configs: dict[str, TenantConfig] = {}
        for tenant_id, raw in raw_configs.items():
            if raw is not None and not isinstance(raw, Mapping):
                logger.error("tenant_config_invalid app_id=%s error=entry is not an object", tenant_id)
                continue
            try:
                self._configs[tenant_id] = self._build(tenant_id, raw or {})
            except ValidationError as exc:
                logger.error("tenant_config_invalid app_id=%s error=%s", tenant_id, exc)
        if not self._configs:
            raise ValueError("no valid tenant configurations")

    @classmethod
    def from_file(cls, path: str | Path | None = None) -> "TenantRegistry":
        """Load the apps file once; fall back to the built-in default on any failure."""

        config_path = Path(path or settings.apps_config_path)
        try:
            raw = json.loads(config_path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("apps config must be a JSON object")
            registry = cls(raw)
            logger.info("tenant_configs_loaded path=%s apps=%s", config_path, registry.tenant_ids)
            return registry
        except (OSError, ValueError) as exc:
            logger.warning("tenant_configs_fallback path=%s error=%s", config_path, exc)
            return cls(FALLBACK_APPS)

    @property
    def tenant_ids(self) -> list[str]:
        return list(self._configs)

    def _build(self, tenant_id: str, raw: Mapping[str, Any]) -> TenantConfig:
        merged = merge_config_dicts(self._default_raw, raw)
        merged["id"] = tenant_id
        return TenantConfig.model_validate(merged)

    def merge_with_default(self, partial: Mapping[str, Any], tenant_id: str | None = None) -> TenantConfig:
        return self._build(tenant_id or partial.get("id") or DEFAULT_TENANT_ID, partial)

    def get_config(self, tenant_id: str | None = None) -> TenantConfig:
        """Return the tenant's config, else `default`, else the first entry."""

        if tenant_id and tenant_id in self._configs:
            return self._configs[tenant_id]
        if DEFAULT_TENANT_ID in self._configs:
            return self._configs[DEFAULT_TENANT_ID]
        return next(iter(self._configs.values()))
