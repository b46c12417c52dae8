"""Tenant ("app") configuration models.

The static apps file uses camelCase keys; models accept both camelCase and
snake_case and are frozen once built.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NotificationProvider(str, Enum):
    ONESIGNAL = "onesignal"
    CUSTOM = "custom"
    NONE = "none"
    # Reserved slot; dispatched as disabled.
    FCM = "fcm"


class RecordStoreBackend(str, Enum):
    TREE = "tree"
    STRUCTURED = "structured"
    CUSTOM_HTTP = "custom_http"


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore")


class OneSignalSettings(_ConfigModel):
    app_id: str = ""
    rest_api_key: str = ""


class NotificationSettings(_ConfigModel):
    enabled: bool = True
    provider: NotificationProvider = NotificationProvider.ONESIGNAL
    onesignal: OneSignalSettings = Field(default_factory=OneSignalSettings)
    custom_endpoint: str | None = None


class Collections(_ConfigModel):
    orders: str = "orders"
    consultations: str = "consultations"
    payments: str = "payments"
    users: str = "users"


class RecordStoreSettings(_ConfigModel):
    enabled: bool = True
    backend: RecordStoreBackend | None = None
    database_url: str | None = None
    auth_token: str | None = None
    endpoint: str | None = None
    collections: Collections = Field(default_factory=Collections)


class TestModeSettings(_ConfigModel):
    __test__ = False

    auto_detect: bool = True
    book_on_failure: bool = True


class TenantConfig(_ConfigModel):
    """Fully merged configuration for one tenant."""

    id: str = "default"
    name: str = "Default App"
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    record_store: RecordStoreSettings = Field(default_factory=RecordStoreSettings)
    test_mode: TestModeSettings = Field(default_factory=TestModeSettings)
