import pytest
from pydantic import ValidationError

from air_remote.core.config import Settings


def test_missing_broker_password_fails_at_startup(monkeypatch):
    monkeypatch.delenv("MQTT_PASS", raising=False)
    with pytest.raises(ValidationError) as exc:
        Settings(_env_file=None)
    assert "MQTT_PASS" in str(exc.value)


def test_broker_credentials_from_environment(monkeypatch):
    monkeypatch.setenv("MQTT_PASS", "s3cret")
    monkeypatch.delenv("MQTT_USER", raising=False)
    cfg = Settings(_env_file=None)
    assert cfg.MQTT_PASS == "s3cret"
    assert cfg.MQTT_USER == "air-remote"
