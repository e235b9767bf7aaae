"""Tests for session token issue / verify."""

from datetime import timedelta

import jwt

from app.services.sessions import SessionTokenizer
from tests.mocks.models import T0


def _tokenizer(clock=lambda: T0, secret="test-secret"):
    return SessionTokenizer(secret, clock=clock)


def test_round_trip_carries_identity():
    tokenizer = _tokenizer()
    token = tokenizer.issue("acc-1", "ann@example.com")

    claims = tokenizer.verify(token)
    assert claims is not None
    assert claims.account_id == "acc-1"
    assert claims.email == "ann@example.com"
    assert claims.issued_at == T0
    assert claims.expires_at == T0 + timedelta(days=7)


def test_valid_six_days_later():
    tokenizer = _tokenizer()
    token = tokenizer.issue("acc-1", "ann@example.com")
    assert tokenizer.verify(token, now=T0 + timedelta(days=6)) is not None


def test_expired_eight_days_later():
    tokenizer = _tokenizer()
    token = tokenizer.issue("acc-1", "ann@example.com")
    assert tokenizer.verify(token, now=T0 + timedelta(days=8)) is None


def test_expired_exactly_at_expiry():
    tokenizer = _tokenizer()
    token = tokenizer.issue("acc-1", "ann@example.com")
    assert tokenizer.verify(token, now=T0 + timedelta(days=7)) is None


def test_tampered_token_rejected():
    tokenizer = _tokenizer()
    token = tokenizer.issue("acc-1", "ann@example.com")
    header, payload, signature = token.split(".")
    flipped = "A" if signature[0] != "A" else "B"
    assert tokenizer.verify(f"{header}.{payload}.{flipped}{signature[1:]}") is None


def test_other_secret_rejected():
    token = _tokenizer(secret="secret-a").issue("acc-1", "ann@example.com")
    assert _tokenizer(secret="secret-b").verify(token) is None


def test_garbage_rejected():
    tokenizer = _tokenizer()
    assert tokenizer.verify("") is None
    assert tokenizer.verify("not.a.token") is None


def test_missing_claims_rejected():
    token = jwt.encode({"sub": "acc-1"}, "test-secret", algorithm="HS256")
    assert _tokenizer().verify(token) is None
