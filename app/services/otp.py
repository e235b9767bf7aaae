"""One-time verification codes."""

from __future__ import annotations

import hmac
import secrets
from datetime import datetime, timedelta

from app.config import OTP_TTL_MINUTES

CODE_DIGITS = 6


class OtpGenerator:
    def __init__(self, ttl: timedelta = timedelta(minutes=OTP_TTL_MINUTES)) -> None:
        self.ttl = ttl

    def generate_code(self) -> str:
        """Uniform 6-digit code, leading zeros kept."""
        return f"{secrets.randbelow(10 ** CODE_DIGITS):0{CODE_DIGITS}d}"

    def expiry_for(self, issued_at: datetime) -> datetime:
        return issued_at + self.ttl

    @staticmethod
    def matches(submitted: str, expected: str | None) -> bool:
        if expected is None:
            return False
        return hmac.compare_digest(submitted.encode("utf-8"), expected.encode("utf-8"))
