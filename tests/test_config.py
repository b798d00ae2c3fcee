import os

import pytest

from call_dashboard.config import REQUIRED_VARS, Settings
from call_dashboard.errors import ConfigError


OPTIONAL_VARS = ("PII_REDACTION", "PUBLIC_URL", "PORT", "RECORD_DIRECTIONS", "LOG_LEVEL")


@pytest.fixture
def clean_env(monkeypatch):
    # Private copy so load_dotenv writes never leak into other tests
    env = {k: v for k, v in os.environ.items() if k not in REQUIRED_VARS + OPTIONAL_VARS}
    monkeypatch.setattr(os, "environ", env)
    return env


def test_from_env_reads_credentials_and_defaults(clean_env, tmp_path):
    clean_env.update({
        "TWILIO_ACCOUNT_SID": "AC123",
        "TWILIO_AUTH_TOKEN": "secret",
        "TWILIO_SERVICE_SID": "GA123",
        "PUBLIC_URL": "https://dash.example.com/",
        "PII_REDACTION": "true",
        "RECORD_DIRECTIONS": "inbound, outbound-api",
    })

    settings = Settings.from_env(str(tmp_path / "missing.env"))

    assert settings.twilio_account_sid == "AC123"
    assert settings.pii_redaction is True
    assert settings.public_url == "https://dash.example.com"
    assert settings.record_directions == ["inbound", "outbound-api"]
    assert settings.port == 3902


def test_from_env_loads_dotenv_file(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("TWILIO_ACCOUNT_SID=AC9\nTWILIO_AUTH_TOKEN=tok\nTWILIO_SERVICE_SID=GA9\n")

    settings = Settings.from_env(str(env_file))

    assert (settings.twilio_account_sid, settings.twilio_service_sid) == ("AC9", "GA9")
    assert settings.pii_redaction is False


def test_missing_credentials_is_config_error(clean_env, tmp_path):
    clean_env["TWILIO_ACCOUNT_SID"] = "AC123"

    with pytest.raises(ConfigError) as exc:
        Settings.from_env(str(tmp_path / "missing.env"))

    assert "TWILIO_AUTH_TOKEN" in str(exc.value)
    assert "TWILIO_SERVICE_SID" in str(exc.value)


def test_bad_number_is_config_error(clean_env, tmp_path):
    clean_env.update({
        "TWILIO_ACCOUNT_SID": "AC123",
        "TWILIO_AUTH_TOKEN": "secret",
        "TWILIO_SERVICE_SID": "GA123",
        "PORT": "not-a-port",
    })

    with pytest.raises(ConfigError):
        Settings.from_env(str(tmp_path / "missing.env"))


@pytest.mark.parametrize("level, expected", [("debug", "DEBUG"), ("WARNING", "WARNING")])
def test_log_level_is_normalized(clean_env, tmp_path, level, expected):
    clean_env.update({
        "TWILIO_ACCOUNT_SID": "AC123",
        "TWILIO_AUTH_TOKEN": "secret",
        "TWILIO_SERVICE_SID": "GA123",
        "LOG_LEVEL": level,
    })

    assert Settings.from_env(str(tmp_path / "missing.env")).log_level == expected


def test_unknown_log_level_is_config_error(clean_env, tmp_path):
    clean_env.update({
        "TWILIO_ACCOUNT_SID": "AC123",
        "TWILIO_AUTH_TOKEN": "secret",
        "TWILIO_SERVICE_SID": "GA123",
        "LOG_LEVEL": "chatty",
    })

    with pytest.raises(ConfigError) as exc:
        Settings.from_env(str(tmp_path / "missing.env"))

    assert "chatty" in str(exc.value).lower()


def test_recording_callback_url(settings):
    assert settings.recording_callback_url(False) == "https://dash.example.com/recording-status"
    assert settings.recording_callback_url(True) == "https://dash.example.com/recording-status?piiRedaction=true"
