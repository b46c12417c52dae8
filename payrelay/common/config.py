"""Central environment-driven settings for the relay process.

The process loads this once at startup. Tenant-specific behavior lives in the
apps config file (`APPS_CONFIG_PATH`); everything here is process-wide.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "payrelay"
    log_level: str = "INFO"
    gateway_base_url: str = "https://api.razorpay.com/v1"
    gateway_key_id: str = ""
    gateway_key_secret: str = ""
    gateway_webhook_secret: str = ""
    webhook_signature_header: str = "X-Razorpay-Signature"
    gateway_timeout_seconds: float = 10.0
    supported_currency: str = "INR"
    min_order_amount: int = 100
    apps_config_path: str = "config/apps.json"
    record_store_dsn: str = ""
    record_store_timeout_seconds: float = 5.0
    onesignal_api_url: str = "https://onesignal.com/api/v1/notifications"
    onesignal_app_id: str = ""
    onesignal_rest_api_key: str = ""
    notification_timeout_seconds: float = 5.0
    test_key_prefix: str = "rzp_test_"
    test_payment_id_pattern: str = r"^pay_(test|mock)_"
    otel_exporter_otlp_endpoint: str = ""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
