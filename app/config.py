"""
Application configuration from environment variables.

All settings have sensible defaults for local development.
A .env file in the project root is loaded automatically (if present).
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file before reading any env vars
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# ── Environment ───────────────────────────────────────────────────────────

ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info").upper()

APP_NAME: str = os.getenv("APP_NAME", "Account Security")
APP_URL: str = os.getenv("APP_URL", "http://localhost:8000")


def is_production() -> bool:
    return ENVIRONMENT.lower() == "production"


# ── Paths ─────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"

# SQLite database file
DB_PATH: str = os.getenv("DB_PATH", str(DATA_DIR / "accounts.db"))

# Upper bound (seconds) for a single repository call
REPOSITORY_TIMEOUT: float = float(os.getenv("REPOSITORY_TIMEOUT", "5"))

# ── Sessions (JWT) ────────────────────────────────────────────────────────

JWT_SECRET: str = os.getenv("JWT_SECRET", "dev-secret-change-me-in-production")
JWT_ALGORITHM: str = "HS256"
SESSION_EXPIRY_DAYS: int = int(os.getenv("SESSION_EXPIRY_DAYS", "7"))
SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "auth_token")

# ── Credentials & lockout ─────────────────────────────────────────────────

# bcrypt cost factor; 12 is roughly 250 ms per hash on current hardware.
BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

OTP_TTL_MINUTES: int = int(os.getenv("OTP_TTL_MINUTES", "10"))
OTP_MAX_ATTEMPTS: int = int(os.getenv("OTP_MAX_ATTEMPTS", "5"))

LOGIN_MAX_ATTEMPTS: int = int(os.getenv("LOGIN_MAX_ATTEMPTS", "5"))
LOCKOUT_MINUTES: int = int(os.getenv("LOCKOUT_MINUTES", "15"))

# How often expired rate-limit entries are purged (seconds).
RATE_LIMIT_SWEEP_INTERVAL: float = float(os.getenv("RATE_LIMIT_SWEEP_INTERVAL", "60"))

# Honour X-Forwarded-For only when every request arrives through our own proxy.
TRUST_PROXY_HEADERS: bool = os.getenv("TRUST_PROXY_HEADERS", "false").lower() == "true"

# ── SMTP ──────────────────────────────────────────────────────────────────

SMTP_HOST: str = os.getenv("SMTP_HOST", "")
SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM_EMAIL: str = os.getenv("SMTP_FROM_EMAIL", "noreply@accounts.local")
SMTP_USE_TLS: bool = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
EMAIL_TIMEOUT: float = float(os.getenv("EMAIL_TIMEOUT", "10"))

# Set to "false" to force console-only mode even when SMTP credentials are present.
_SMTP_ENABLED_OVERRIDE: str = os.getenv("SMTP_ENABLED", "auto")


def smtp_enabled() -> bool:
    """True when SMTP should actually send emails.

    Controlled by SMTP_ENABLED env var:
      • "auto" (default) — send if credentials are configured
      • "true"  — always send (will fail if credentials are missing)
      • "false" — never send, print to console instead
    """
    if _SMTP_ENABLED_OVERRIDE.lower() == "false":
        return False
    if _SMTP_ENABLED_OVERRIDE.lower() == "true":
        return True
    return bool(SMTP_HOST and SMTP_USERNAME and SMTP_PASSWORD)


# ── CAPTCHA (Cloudflare Turnstile) ────────────────────────────────────────

TURNSTILE_SECRET_KEY: str = os.getenv("TURNSTILE_SECRET_KEY", "")
TURNSTILE_VERIFY_URL: str = os.getenv(
    "TURNSTILE_VERIFY_URL",
    "https://challenges.cloudflare.com/turnstile/v0/siteverify",
)
CAPTCHA_TIMEOUT: float = float(os.getenv("CAPTCHA_TIMEOUT", "10"))


def captcha_bypass_enabled() -> bool:
    """Accept every CAPTCHA token when no secret is configured in development.

    Outside development a missing secret fails closed.
    """
    return not TURNSTILE_SECRET_KEY and ENVIRONMENT.lower() == "development"


# ── Development conveniences ──────────────────────────────────────────────

_EXPOSE_DEV_OTP: bool = os.getenv("EXPOSE_DEV_OTP", "false").lower() == "true"


def dev_otp_enabled() -> bool:
    """Echo OTP codes in API responses.

    Only honoured outside production and while outbound email is off.
    """
    return _EXPOSE_DEV_OTP and not is_production() and not smtp_enabled()
