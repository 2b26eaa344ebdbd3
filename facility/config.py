"""
Centralized configuration for the facility portal.

Settings are read from the environment once at startup (see load_settings)
and passed to the components that need them.
"""

import os
from dataclasses import dataclass


def is_dev_mode() -> bool:
    """Check if running in development mode (--dev flag or DEV_MODE env)."""
    return os.getenv("DEV_MODE", "").lower() in ("true", "1", "yes")


def is_production() -> bool:
    """Check if running on Railway (production environment)."""
    return bool(os.environ.get("RAILWAY_ENVIRONMENT"))


def get_api_port() -> int:
    """Get API server port from env or default."""
    return int(os.getenv("API_PORT", "8000"))


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.lower() in ("true", "1", "yes")


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


# Upper bound for any single provider call, whatever the env says
MAX_PROVIDER_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, constructed once and passed by reference."""

    # SMS (Twilio)
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_phone_number: str | None = None
    sms_default_country_code: str = "1"

    # Google Calendar
    google_calendar_credentials_json: str | None = None
    google_calendar_credentials_file: str | None = None
    google_calendar_id: str = "primary"
    google_calendar_subject: str | None = None

    # Facility identity
    facility_name: str = "Double C Ranch"
    facility_timezone: str = "America/New_York"
    organizer_email: str = "support@doublecranchllc.com"
    ics_uid_domain: str = "doublecranchllc.com"
    portal_url: str = "memberdoublecranchllc.com"

    # Provider call policy
    provider_timeout_seconds: float = 10.0
    provider_max_retries: int = 2
    provider_retry_backoff_seconds: float = 1.0

    # Attendance policy: staff-recorded check-ins count immediately unless disabled
    staff_checkins_auto_approve: bool = True

    # How long before a lesson the SMS reminder goes out
    lesson_reminder_hours: int = 24

    @property
    def sms_configured(self) -> bool:
        return bool(
            self.twilio_account_sid
            and self.twilio_auth_token
            and self.twilio_phone_number
        )

    @property
    def calendar_configured(self) -> bool:
        if self.google_calendar_credentials_json:
            return True
        return bool(
            self.google_calendar_credentials_file
            and os.path.exists(self.google_calendar_credentials_file)
        )


def load_settings() -> Settings:
    """
    Build Settings from environment variables.

    Call once at startup (after load_dotenv) and hand the result to
    build_sms_provider / build_calendar_provider / CheckInLedger.
    """
    timeout = min(
        _env_float("PROVIDER_TIMEOUT_SECONDS", 10.0), MAX_PROVIDER_TIMEOUT_SECONDS
    )
    return Settings(
        twilio_account_sid=os.environ.get("TWILIO_ACCOUNT_SID") or None,
        twilio_auth_token=os.environ.get("TWILIO_AUTH_TOKEN") or None,
        twilio_phone_number=os.environ.get("TWILIO_PHONE_NUMBER") or None,
        sms_default_country_code=os.environ.get("SMS_DEFAULT_COUNTRY_CODE", "1"),
        google_calendar_credentials_json=(
            os.environ.get("GOOGLE_CALENDAR_CREDENTIALS_JSON") or None
        ),
        google_calendar_credentials_file=(
            os.environ.get("GOOGLE_CALENDAR_CREDENTIALS_FILE") or None
        ),
        google_calendar_id=os.environ.get("GOOGLE_CALENDAR_ID", "primary"),
        google_calendar_subject=os.environ.get("GOOGLE_CALENDAR_SUBJECT") or None,
        facility_name=os.environ.get("FACILITY_NAME", "Double C Ranch"),
        facility_timezone=os.environ.get("FACILITY_TIMEZONE", "America/New_York"),
        organizer_email=os.environ.get(
            "ORGANIZER_EMAIL", "support@doublecranchllc.com"
        ),
        ics_uid_domain=os.environ.get("ICS_UID_DOMAIN", "doublecranchllc.com"),
        portal_url=os.environ.get("PORTAL_URL", "memberdoublecranchllc.com"),
        provider_timeout_seconds=timeout,
        provider_max_retries=_env_int("PROVIDER_MAX_RETRIES", 2),
        provider_retry_backoff_seconds=_env_float(
            "PROVIDER_RETRY_BACKOFF_SECONDS", 1.0
        ),
        staff_checkins_auto_approve=_env_bool("STAFF_CHECKINS_AUTO_APPROVE", True),
        lesson_reminder_hours=_env_int("LESSON_REMINDER_HOURS", 24),
    )


# Required environment variables for production
# Format: (name, description, required_in_dev)
REQUIRED_ENV_VARS = [
    ("DATABASE_URL", "PostgreSQL connection string", True),
    ("JWT_SECRET", "Secret key for staff session tokens", True),
    ("TWILIO_ACCOUNT_SID", "Twilio account SID (SMS disabled if unset)", False),
    (
        "GOOGLE_CALENDAR_CREDENTIALS_JSON",
        "Google service account JSON (calendar sync disabled if unset)",
        False,
    ),
]


def check_required_env_vars() -> tuple[bool, list[str]]:
    """
    Check that required environment variables are set.

    Returns:
        (all_ok, warnings): Tuple of success flag and list of warning messages
    """
    warnings = []
    errors = []
    in_dev = is_dev_mode()

    for name, description, required_in_dev in REQUIRED_ENV_VARS:
        value = os.environ.get(name)

        if not value:
            if is_production() and required_in_dev:
                errors.append(f"  ✗ {name}: Not set ({description})")
            elif required_in_dev or not in_dev:
                warnings.append(f"  ⚠ {name}: Not set ({description})")

    if errors:
        for error in errors:
            print(error)
        return False, warnings

    return True, warnings
