"""Registration input validation."""

from __future__ import annotations

import re

from email_validator import EmailNotValidError, validate_email as _check_email

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100

PASSWORD_MIN_LENGTH = 8
# bcrypt only looks at the first 72 bytes of its input.
PASSWORD_MAX_BYTES = 72

_SPECIAL_CHARS = re.compile(r"""[!@#$%^&*()_+\-=\[\]{};':"\\|,.<>/?`~]""")


def sanitize_input(value: str) -> str:
    """Trim surrounding whitespace and drop angle brackets."""
    return value.strip().replace("<", "").replace(">", "")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_email(email: str) -> bool:
    try:
        _check_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def validate_name(name: str) -> bool:
    return NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH


def validate_password(password: str) -> list[str]:
    """Return every rule *password* breaks, in display order (empty if valid)."""
    errors: list[str] = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        errors.append(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain an uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain a lowercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain a number")
    if not _SPECIAL_CHARS.search(password):
        errors.append("Password must contain a special character")
    return errors
