from __future__ import annotations

import os
from dataclasses import dataclass


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    app_env: str
    persistence_enabled: bool
    persistence_db_path: str
    database_url: str
    auth_enabled: bool
    jwt_secret: str
    jwt_algorithm: str
    agency_name: str
    agency_timezone: str
    public_base_url: str
    admin_notification_email: str
    staffing_admin_email: str
    referral_code_prefix: str
    slot_weeks_ahead: int
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_from: str
    smtp_use_tls: bool
    mail_max_retries: int
    mail_retry_backoff_seconds: int
    gemini_api_key: str
    gemini_model: str
    ai_timeout_seconds: int
    google_ads_webhook_secret: str

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_port)

    @property
    def ai_configured(self) -> bool:
        return bool(self.gemini_api_key)


def load_settings() -> Settings:
    persistence_db_path = os.getenv("PERSISTENCE_DB_PATH", "data/homecare_hrm.sqlite3").strip()
    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        database_url = f"sqlite:///{persistence_db_path.replace(chr(92), '/')}"
    return Settings(
        app_env=os.getenv("APP_ENV", "development"),
        persistence_enabled=_bool_env("PERSISTENCE_ENABLED", True),
        persistence_db_path=persistence_db_path,
        database_url=database_url,
        auth_enabled=_bool_env("AUTH_ENABLED", False),
        jwt_secret=os.getenv("JWT_SECRET", "dev-only-secret-change-in-prod").strip(),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256").strip(),
        agency_name=os.getenv("AGENCY_NAME", "FirstLight Home Care").strip(),
        agency_timezone=os.getenv("AGENCY_TIMEZONE", "America/Los_Angeles").strip(),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:3000").strip().rstrip("/"),
        admin_notification_email=os.getenv(
            "ADMIN_NOTIFICATION_EMAIL", "care-rc@firstlighthomecare.com"
        ).strip(),
        staffing_admin_email=os.getenv(
            "STAFFING_ADMIN_EMAIL", "admin-rc@firstlighthomecare.com"
        ).strip(),
        referral_code_prefix=os.getenv("REFERRAL_CODE_PREFIX", "FLHC").strip().upper() or "FLHC",
        slot_weeks_ahead=max(1, min(8, _int_env("SLOT_WEEKS_AHEAD", 3))),
        smtp_host=os.getenv("SMTP_HOST", "").strip(),
        smtp_port=_int_env("SMTP_PORT", 587),
        smtp_user=os.getenv("SMTP_USER", "").strip(),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        smtp_from=os.getenv("SMTP_FROM", "no-reply@firstlighthomecare.com").strip(),
        smtp_use_tls=_bool_env("SMTP_USE_TLS", True),
        mail_max_retries=max(1, _int_env("MAIL_MAX_RETRIES", 3)),
        mail_retry_backoff_seconds=max(1, _int_env("MAIL_RETRY_BACKOFF_SECONDS", 60)),
        gemini_api_key=os.getenv("GEMINI_API_KEY", "").strip(),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash").strip(),
        ai_timeout_seconds=max(1, _int_env("AI_TIMEOUT_SECONDS", 30)),
        google_ads_webhook_secret=os.getenv("GOOGLE_ADS_WEBHOOK_SECRET", "").strip(),
    )
