from payrelay.common.config import CommonSettings
from payrelay.common.startup import startup_summary


def test_secrets_are_reported_only_as_set_or_unset():
    config = CommonSettings(
        gateway_key_id="rzp_test_abc",
        gateway_key_secret="s3cret",
        record_store_dsn="postgresql://user:pw@db/relay",
    )
    summary = startup_summary(config)

    assert summary["gateway_key_secret"] == "<set>"
    assert summary["gateway_webhook_secret"] == "<unset>"
    assert summary["record_store_dsn"] == "<set>"
    assert "s3cret" not in str(summary)
    assert "pw@db" not in str(summary)
    assert summary["gateway_mode"] == "test"
    assert summary["apps_config_path"] == "config/apps.json"
