"""
Pre-built values for use in tests.

    from tests.mocks.models import T0, STRONG_PASSWORD, make_account
"""

from __future__ import annotations

from datetime import datetime, timezone

from app.models import Account

# Fixed start time for FakeClock
T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

STRONG_PASSWORD = "Str0ng!pw"
OTHER_PASSWORD = "An0ther#pw"

CLIENT_IP = "203.0.113.7"
CAPTCHA_OK = "captcha-ok"


def make_account(**overrides) -> Account:
    """Factory for stored accounts (password hash is not a real digest)."""
    defaults = dict(
        id="00000000-0000-0000-0000-000000000001",
        email="ann@example.com",
        name="Ann",
        password_hash="not-a-real-hash",
        created_at=T0,
        updated_at=T0,
    )
    defaults.update(overrides)
    return Account(**defaults)
