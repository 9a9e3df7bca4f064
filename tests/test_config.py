"""Tests for environment configuration."""

from pathlib import Path

import pytest

from market_digest.config import DEFAULT_SUBSCRIBERS_FILE, Settings, load_settings, parse_send_time
from market_digest.email_service import SendGridTransport, SmtpTransport, build_transport
from market_digest.errors import ConfigError

ENV_KEYS = [
    "EMAIL_SERVICE", "SENDGRID_API_KEY", "EMAIL_SENDER", "EMAIL_SENDER_NAME", "EMAIL_USER",
    "EMAIL_APP_PASSWORD", "SMTP_HOST", "SMTP_PORT", "EMAIL_TEST_MODE", "EMAIL_TEST_RECIPIENT",
    "EMAIL_SEND_TIMEOUT", "EMAIL_SEND_DELAY", "NEWSLETTER_TITLE", "NEWSLETTER_SEND_TIME",
    "DASHBOARD_URL", "SCHEDULER_ENABLED", "SUBSCRIBERS_FILE", "MARKET_SNAPSHOT_FILE",
    "OPENAI_API_KEY", "OPENAI_MODEL", "CORS_ORIGINS",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)

    def _load(**env):
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        return load_settings(env_path=tmp_path / "missing.env")
    return _load


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults(self, clean_env):
        settings = clean_env()

        assert settings.email_service == "sendgrid"
        assert settings.test_mode is False
        assert settings.send_timeout == 30.0
        assert settings.send_delay == 1.0
        assert settings.send_time == "08:00"
        assert settings.scheduler_enabled is False
        assert settings.subscribers_file == DEFAULT_SUBSCRIBERS_FILE
        assert settings.market_snapshot_file is None
        assert settings.smtp_port == 587

    def test_reads_environment(self, clean_env):
        settings = clean_env(
            EMAIL_TEST_MODE="true",
            EMAIL_TEST_RECIPIENT="qa@test.com",
            EMAIL_SEND_TIMEOUT="2.5",
            EMAIL_SEND_DELAY="0",
            NEWSLETTER_SEND_TIME="17:45",
            SUBSCRIBERS_FILE="/tmp/subs.json",
            CORS_ORIGINS="https://a.example, https://b.example",
        )

        assert settings.test_mode is True
        assert settings.test_recipient == "qa@test.com"
        assert settings.send_timeout == 2.5
        assert settings.send_delay == 0.0
        assert settings.send_time == "17:45"
        assert settings.subscribers_file == Path("/tmp/subs.json")
        assert settings.cors_origins == ["https://a.example", "https://b.example"]

    def test_smtp_port_default_matches_dataclass(self, clean_env):
        assert Settings().smtp_port == clean_env().smtp_port == 587

    def test_gmail_defaults_to_implicit_tls_port(self, clean_env):
        assert clean_env(EMAIL_SERVICE="gmail").smtp_port == 465

    @pytest.mark.parametrize("env", [
        {"EMAIL_SEND_TIMEOUT": "soon"},
        {"EMAIL_SEND_DELAY": "-1"},
        {"EMAIL_SEND_TIMEOUT": "0"},
        {"EMAIL_SEND_TIMEOUT": "-3"},
        {"EMAIL_SEND_DELAY": "nan"},
        {"EMAIL_SEND_TIMEOUT": "inf"},
        {"SMTP_PORT": "smtp"},
        {"NEWSLETTER_SEND_TIME": "8 o'clock"},
    ])
    def test_malformed_values_raise_config_error(self, clean_env, env):
        with pytest.raises(ConfigError):
            clean_env(**env)

    def test_from_address_falls_back_to_smtp_user(self):
        settings = Settings(email_user="user@gmail.com")

        assert settings.from_address == "user@gmail.com"


class TestParseSendTime:

    def test_valid(self):
        assert parse_send_time(" 23:59 ") == "23:59"

    def test_invalid(self):
        with pytest.raises(ConfigError):
            parse_send_time("23:60")


class TestBuildTransport:
    """Tests for transport selection."""

    def test_sendgrid(self, settings):
        transport = build_transport(settings)

        assert isinstance(transport, SendGridTransport)
        assert transport.sender_email == "digest@test.com"

    def test_sendgrid_without_key(self, settings):
        settings.sendgrid_api_key = None

        with pytest.raises(ConfigError):
            build_transport(settings)

    def test_gmail_uses_gmail_host(self):
        settings = Settings(email_service="gmail", email_user="me@gmail.com",
                            email_app_password="app-pass", smtp_port=465)

        transport = build_transport(settings)

        assert isinstance(transport, SmtpTransport)
        assert transport.host == "smtp.gmail.com"
        assert transport.sender_email == "me@gmail.com"

    def test_smtp_requires_host(self):
        settings = Settings(email_service="smtp", email_user="me@x.com", email_app_password="pw")

        with pytest.raises(ConfigError):
            build_transport(settings)

    def test_unknown_service(self, settings):
        settings.email_service = "carrier-pigeon"

        with pytest.raises(ConfigError):
            build_transport(settings)
