"""Pydantic models for the account security API."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from app.errors import ErrorCode


# ── Persistence ────────────────────────────────────────────────────────────


class Account(BaseModel):
    """Stored account record.  Only AuthService mutates it."""
    id: str = Field(..., description="Unique account identifier")
    email: str = Field(..., description="Normalized (lower-cased) email, unique")
    name: str = Field(..., description="Display name")
    password_hash: str = Field(..., description="bcrypt digest, never exposed")
    email_verified: bool = Field(default=False, description="Whether the email was confirmed")
    email_verified_at: Optional[datetime] = Field(None, description="When the email was confirmed")
    otp_code: Optional[str] = Field(None, description="Outstanding 6-digit code, never exposed")
    otp_expires_at: Optional[datetime] = Field(None, description="Expiry of the outstanding code")
    otp_attempts: int = Field(default=0, ge=0, description="Wrong guesses against the current code")
    login_attempts: int = Field(default=0, ge=0, description="Failed logins in the current lockout cycle")
    locked_until: Optional[datetime] = Field(None, description="Logins refused until this time")
    last_login_at: Optional[datetime] = Field(None, description="Last successful login")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last modification timestamp")

    def summary(self) -> "AccountSummary":
        return AccountSummary(
            id=self.id,
            email=self.email,
            name=self.name,
            email_verified=self.email_verified,
        )


class AccountSummary(BaseModel):
    """Outward-facing view of an account."""
    id: str = Field(..., description="Account identifier")
    email: str = Field(..., description="Account email")
    name: str = Field(..., description="Display name")
    email_verified: bool = Field(..., description="Whether the email was confirmed")


# ── Requests ───────────────────────────────────────────────────────────────
# Fields default to "" so that missing input is reported by the service's
# own validation (400) rather than by FastAPI (422).


class RegisterRequest(BaseModel):
    email: str = Field(default="", description="Email address")
    name: str = Field(default="", description="Display name")
    password: str = Field(default="", description="Plaintext password")
    captcha_token: str = Field(default="", description="Turnstile challenge token")


class LoginRequest(BaseModel):
    email: str = Field(default="", description="Email address")
    password: str = Field(default="", description="Plaintext password")
    captcha_token: str = Field(default="", description="Turnstile challenge token")


class VerifyCodeRequest(BaseModel):
    email: str = Field(default="", description="Email address")
    code: str = Field(default="", description="6-digit verification code")


class ResendCodeRequest(BaseModel):
    email: str = Field(default="", description="Email address")


# ── Responses ──────────────────────────────────────────────────────────────


class AuthResult(BaseModel):
    """Tagged outcome of an AuthService operation."""
    ok: bool = Field(..., description="Whether the operation succeeded")
    message: str = Field(..., description="Human-readable outcome")
    error: Optional[ErrorCode] = Field(None, description="Error code when ok is false")
    details: Dict[str, Any] = Field(default_factory=dict, description="Structured error details")
    user: Optional[AccountSummary] = Field(None, description="Account summary on success")
    token: Optional[str] = Field(None, description="Session token, delivered as a cookie")
    dev_otp: Optional[str] = Field(None, description="Development-only OTP echo")

    @classmethod
    def success(cls, message: str, **kwargs: Any) -> "AuthResult":
        return cls(ok=True, message=message, **kwargs)

    @classmethod
    def failure(cls, error: ErrorCode, message: str, **details: Any) -> "AuthResult":
        return cls(ok=False, message=message, error=error, details=details)


class MeResponse(BaseModel):
    user: Optional[AccountSummary] = Field(None, description="Current user, or null")


class MessageResponse(BaseModel):
    message: str = Field(..., description="Human-readable message")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Health status")
    version: str = Field(..., description="Application version")
    database: str = Field(..., description="Account database status")
    rate_limit_keys: int = Field(..., description="Live rate-limit windows in this process")
    timestamp: datetime = Field(..., description="Current timestamp")
