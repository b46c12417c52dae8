"""Startup summary of the effective relay configuration.

Values come from the loaded `CommonSettings`, so defaults are reported too.
Secret-bearing fields are reduced to whether they are set.
"""

from payrelay.common.config import CommonSettings
from payrelay.common.logging import logger


SECRET_MARKERS = ("key", "secret", "password", "token", "dsn")

STARTUP_FIELDS = (
    "gateway_base_url",
    "gateway_key_id",
    "gateway_key_secret",
    "gateway_webhook_secret",
    "apps_config_path",
    "record_store_dsn",
    "onesignal_rest_api_key",
    "otel_exporter_otlp_endpoint",
)


def describe_setting(name: str, value) -> str:
    if any(marker in name for marker in SECRET_MARKERS):
        return "<set>" if value else "<unset>"
    return str(value) if value not in ("", None) else "<unset>"


def startup_summary(config: CommonSettings, fields=STARTUP_FIELDS) -> dict[str, str]:
    summary = {"service": config.service_name}
    for name in fields:
        summary[name] = describe_setting(name, getattr(config, name))
    # Derived from the key id prefix.
    summary["gateway_mode"] = "test" if config.gateway_key_id.startswith(config.test_key_prefix) else "live"
    return summary


def log_startup_config(config: CommonSettings) -> None:
    logger.info("startup_config=%s", startup_summary(config))
