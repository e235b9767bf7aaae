"""
Shared test fixtures.

Two levels:
  • `service` – an AuthService wired to in-memory collaborators and a
    FakeClock, for exercising the state machine directly.
  • `client`  – a FastAPI TestClient running the full lifespan against a
    temporary SQLite database, a fake CAPTCHA and a recording mailer.
"""

from __future__ import annotations

from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient

from app.db import SqliteAccountRepository
from app.main import app
from app.rate_limit import RateLimiter
from app.services.auth import AuthPolicy, AuthService
from app.services.passwords import PasswordHasher
from app.services.sessions import SessionTokenizer
from tests.mocks.models import T0
from tests.mocks.services import (
    FakeCaptcha,
    FakeClock,
    InMemoryAccountRepository,
    RecordingEmailSender,
)

# Minimum bcrypt cost keeps the suite fast.
TEST_ROUNDS = 4


# ── Service-level fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture()
def repository() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture()
def captcha() -> FakeCaptcha:
    return FakeCaptcha()


@pytest.fixture()
def emails() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture()
def tokenizer(clock) -> SessionTokenizer:
    return SessionTokenizer("test-secret", clock=clock)


@pytest.fixture()
def service(repository, captcha, emails, tokenizer, clock) -> AuthService:
    return AuthService(
        repository,
        captcha,
        emails,
        limiter=RateLimiter(clock),
        hasher=PasswordHasher(rounds=TEST_ROUNDS),
        tokenizer=tokenizer,
        clock=clock,
    )


# ── HTTP fixtures ──────────────────────────────────────────────────────────


@dataclass
class AppDoubles:
    captcha: FakeCaptcha
    emails: RecordingEmailSender


@pytest.fixture()
def _test_env(monkeypatch, tmp_path) -> AppDoubles:
    """
    Patch the DB path and the service factory so the app lifespan runs
    against a temp database and fake outbound collaborators.
    """
    # ── Temp database ─────────────────────────────────────────────────
    import app.db as db_mod

    monkeypatch.setattr(db_mod, "DB_PATH", str(tmp_path / "test.db"))

    # ── Fake CAPTCHA / mailer, real SQLite repository ─────────────────
    doubles = AppDoubles(captcha=FakeCaptcha(), emails=RecordingEmailSender())

    from app.rate_limit import rate_limiter

    rate_limiter.reset()

    def _build() -> AuthService:
        return AuthService(
            SqliteAccountRepository(),
            doubles.captcha,
            doubles.emails,
            limiter=rate_limiter,
            hasher=PasswordHasher(rounds=TEST_ROUNDS),
            policy=AuthPolicy(expose_dev_otp=True),
        )

    monkeypatch.setattr("app.main.build_auth_service", _build)

    # ── Disable the per-IP slowapi throttle ───────────────────────────
    from app.rate_limit import limiter as _limiter

    monkeypatch.setattr(_limiter, "enabled", False)

    yield doubles

    rate_limiter.reset()


@pytest.fixture()
def doubles(_test_env) -> AppDoubles:
    """Public alias for tests that inspect the fake collaborators."""
    return _test_env


@pytest.fixture()
def client(_test_env) -> TestClient:
    """
    FastAPI TestClient with a temp DB and fake collaborators.

    Uses a context manager so the lifespan runs (DB init/shutdown).
    """
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc


@pytest.fixture()
def trusted_proxy(monkeypatch) -> None:
    """Deploy as if behind our own reverse proxy (X-Forwarded-For honoured)."""
    monkeypatch.setattr("app.rate_limit.TRUST_PROXY_HEADERS", True)
