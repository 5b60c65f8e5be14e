"""
Simple configuration management.

The ``Settings`` dataclass reads configuration directly from
environment variables.  Defaults are provided for every field so the
API starts in development without any setup; third-party integrations
(Razorpay, SMTP, Twilio) stay disabled until their credentials are
supplied.
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "Home Services API")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    debug: bool = _env_bool("DEBUG")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "")

    secret_key: str = os.getenv("SECRET_KEY", "change_me")
    refresh_secret_key: str = os.getenv("REFRESH_SECRET_KEY", "change_me_too")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))
    refresh_token_expire_minutes: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 30)))

    # Path to the SQLite database.  Relative paths are resolved against
    # the project root by the ``db`` module.
    database_url: str = os.getenv("DATABASE_URL", "home_services.db")

    # GST applied on top of a service's base price when a booking is made.
    tax_rate: float = float(os.getenv("TAX_RATE", "0.18"))
    currency: str = os.getenv("CURRENCY", "INR")

    # Razorpay credentials.  Payment endpoints answer 503 until both the
    # key id and secret are set.
    razorpay_key_id: str = os.getenv("RAZORPAY_KEY_ID", "")
    razorpay_key_secret: str = os.getenv("RAZORPAY_KEY_SECRET", "")
    razorpay_webhook_secret: str = os.getenv("RAZORPAY_WEBHOOK_SECRET", "")
    razorpay_api_url: str = os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1")

    # Outgoing e-mail.  ``smtp_security`` is one of ``starttls``, ``ssl``
    # or ``none``.
    smtp_host: str = os.getenv("SMTP_HOST", "")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_user: str = os.getenv("SMTP_USER", "")
    smtp_password: str = os.getenv("SMTP_PASSWORD", "")
    smtp_security: str = os.getenv("SMTP_SECURITY", "starttls")
    from_email: str = os.getenv("FROM_EMAIL", "noreply@homeservices.in")
    from_name: str = os.getenv("FROM_NAME", "Home Services")

    # Twilio credentials for SMS delivery.
    twilio_account_sid: str = os.getenv("TWILIO_ACCOUNT_SID", "")
    twilio_auth_token: str = os.getenv("TWILIO_AUTH_TOKEN", "")
    twilio_phone_number: str = os.getenv("TWILIO_PHONE_NUMBER", "")

    # Used to build links in e-mails (verification, password reset).
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:3000")
    # Comma-separated list of origins allowed by CORS.
    cors_origins: str = os.getenv("CORS_ORIGINS", "http://localhost:3000")


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.  Environment variables
# must be set before this module is imported.
settings = Settings()
