"""
Configuration helpers for the Scrubbed backend.

Exposes a frozen Settings object read from environment variables so that
routers/services do not fetch os.environ directly.
"""

from dataclasses import dataclass
from functools import lru_cache
import os


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    public_base_url: str
    database_url: str
    session_ttl_seconds: int
    profile_cache_ttl_seconds: int
    fallback_profile_ttl_seconds: int
    profile_fetch_timeout_seconds: float
    pending_intent_ttl_seconds: int
    match_radius_km: float
    location_refresh_seconds: int
    location_timeout_seconds: int
    location_max_age_seconds: int
    phone_resend_cooldown_seconds: int
    phone_code_ttl_seconds: int
    google_client_id: str
    google_client_secret: str
    oauth_redirect_path: str
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_from_number: str
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_from: str

    @property
    def twilio_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_from_number)


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _int(value: str | None, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _float(value: str | None, default: float = 0.0) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "https://scrubbed.online").rstrip("/"),
        database_url=os.getenv("DATABASE_URL", ""),
        session_ttl_seconds=_int(os.getenv("SESSION_TTL_SECONDS"), 86400),
        profile_cache_ttl_seconds=_int(os.getenv("PROFILE_CACHE_TTL_SECONDS"), 300),
        fallback_profile_ttl_seconds=_int(os.getenv("FALLBACK_PROFILE_TTL_SECONDS"), 60),
        profile_fetch_timeout_seconds=_float(os.getenv("PROFILE_FETCH_TIMEOUT_SECONDS"), 2.0),
        pending_intent_ttl_seconds=_int(os.getenv("PENDING_INTENT_TTL_SECONDS"), 600),
        match_radius_km=_float(os.getenv("MATCH_RADIUS_KM"), 4.0),
        location_refresh_seconds=_int(os.getenv("LOCATION_REFRESH_SECONDS"), 300),
        location_timeout_seconds=_int(os.getenv("LOCATION_TIMEOUT_SECONDS"), 15),
        location_max_age_seconds=_int(os.getenv("LOCATION_MAX_AGE_SECONDS"), 300),
        phone_resend_cooldown_seconds=_int(os.getenv("PHONE_RESEND_COOLDOWN_SECONDS"), 60),
        phone_code_ttl_seconds=_int(os.getenv("PHONE_CODE_TTL_SECONDS"), 600),
        google_client_id=os.getenv("GOOGLE_CLIENT_ID", ""),
        google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", ""),
        oauth_redirect_path=os.getenv("OAUTH_REDIRECT_PATH", "/auth/callback"),
        twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
        twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
        twilio_from_number=os.getenv("TWILIO_FROM_NUMBER", ""),
        smtp_host=os.getenv("SMTP_HOST", ""),
        smtp_port=_int(os.getenv("SMTP_PORT", "465"), 465),
        smtp_user=os.getenv("SMTP_USER", ""),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        smtp_from=os.getenv("SMTP_FROM", os.getenv("SMTP_USER", "")),
    )
