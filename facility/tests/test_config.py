"""Tests for settings loading."""

import pytest

from facility.config import MAX_PROVIDER_TIMEOUT_SECONDS, Settings, load_settings


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "TWILIO_ACCOUNT_SID",
        "TWILIO_AUTH_TOKEN",
        "TWILIO_PHONE_NUMBER",
        "GOOGLE_CALENDAR_CREDENTIALS_JSON",
        "GOOGLE_CALENDAR_CREDENTIALS_FILE",
        "PROVIDER_TIMEOUT_SECONDS",
        "PROVIDER_MAX_RETRIES",
        "STAFF_CHECKINS_AUTO_APPROVE",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadSettings:
    def test_defaults(self, clean_env):
        settings = load_settings()
        assert settings.provider_max_retries == 2
        assert settings.provider_timeout_seconds == 10.0
        assert settings.staff_checkins_auto_approve is True
        assert not settings.sms_configured
        assert not settings.calendar_configured

    def test_timeout_is_capped(self, clean_env):
        clean_env.setenv("PROVIDER_TIMEOUT_SECONDS", "120")
        assert load_settings().provider_timeout_seconds == MAX_PROVIDER_TIMEOUT_SECONDS

    def test_staff_auto_approve_can_be_disabled(self, clean_env):
        clean_env.setenv("STAFF_CHECKINS_AUTO_APPROVE", "false")
        assert load_settings().staff_checkins_auto_approve is False

    def test_sms_needs_all_three_credentials(self, clean_env):
        clean_env.setenv("TWILIO_ACCOUNT_SID", "AC123")
        clean_env.setenv("TWILIO_AUTH_TOKEN", "secret")
        assert not load_settings().sms_configured

        clean_env.setenv("TWILIO_PHONE_NUMBER", "+15550000000")
        assert load_settings().sms_configured

    def test_missing_credentials_file_is_not_configured(self):
        settings = Settings(google_calendar_credentials_file="/nonexistent/creds.json")
        assert not settings.calendar_configured
