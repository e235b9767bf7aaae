"""
Error taxonomy for the account security core.

Business-rule violations are returned as values (see AuthResult in
app.models), never raised.  The HTTP layer maps each code to a status
via ERROR_CODE_TO_HTTP_STATUS.
"""

from __future__ import annotations

from enum import Enum

from fastapi import status


class ErrorCode(str, Enum):
    # Input
    VALIDATION_FAILED = "validation_failed"
    CAPTCHA_FAILED = "captcha_failed"

    # Abuse protection
    RATE_LIMITED = "rate_limited"
    ACCOUNT_LOCKED = "account_locked"

    # Credentials
    INVALID_CREDENTIALS = "invalid_credentials"
    NOT_VERIFIED = "not_verified"
    ACCOUNT_EXISTS = "account_exists"
    ACCOUNT_NOT_FOUND = "account_not_found"

    # Verification codes
    ALREADY_VERIFIED = "already_verified"
    CODE_EXPIRED = "code_expired"
    CODE_MISMATCH = "code_mismatch"
    TOO_MANY_CODE_ATTEMPTS = "too_many_code_attempts"

    # Infrastructure
    INTERNAL_ERROR = "internal_error"


ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CAPTCHA_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ACCOUNT_EXISTS: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ACCOUNT_NOT_FOUND: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ALREADY_VERIFIED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CODE_EXPIRED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CODE_MISMATCH: status.HTTP_400_BAD_REQUEST,
    ErrorCode.TOO_MANY_CODE_ATTEMPTS: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.NOT_VERIFIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.ACCOUNT_LOCKED: status.HTTP_423_LOCKED,
    ErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_http_status(code: ErrorCode) -> int:
    """Return the HTTP status for an error code, defaulting to 500."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR)


class AccountExistsError(Exception):
    """Raised by a repository when inserting an email that is already stored."""

    def __init__(self, email: str) -> None:
        super().__init__(f"Account already exists: {email}")
        self.email = email
