"""Tests for password hashing and verification codes."""

from datetime import timedelta

import pytest

from app.services.otp import OtpGenerator
from app.services.passwords import PasswordHasher
from tests.mocks.models import STRONG_PASSWORD, T0


@pytest.fixture(scope="module")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


class TestPasswordHasher:
    def test_hash_then_verify(self, hasher):
        digest = hasher.hash(STRONG_PASSWORD)
        assert digest != STRONG_PASSWORD
        assert hasher.verify(STRONG_PASSWORD, digest) is True

    def test_wrong_password_rejected(self, hasher):
        digest = hasher.hash(STRONG_PASSWORD)
        assert hasher.verify("Str0ng!pW", digest) is False

    def test_salted(self, hasher):
        assert hasher.hash(STRONG_PASSWORD) != hasher.hash(STRONG_PASSWORD)

    def test_cost_factor_embedded(self, hasher):
        assert hasher.hash(STRONG_PASSWORD).startswith("$2b$04$")

    def test_malformed_hash_is_a_mismatch(self, hasher):
        assert hasher.verify(STRONG_PASSWORD, "not-a-bcrypt-hash") is False


class TestOtpGenerator:
    def test_code_is_six_digits(self):
        otp = OtpGenerator()
        for _ in range(200):
            code = otp.generate_code()
            assert len(code) == 6
            assert code.isdigit()

    def test_codes_vary(self):
        otp = OtpGenerator()
        assert len({otp.generate_code() for _ in range(50)}) > 1

    def test_expiry_default_ten_minutes(self):
        assert OtpGenerator().expiry_for(T0) == T0 + timedelta(minutes=10)

    def test_custom_ttl(self):
        assert OtpGenerator(ttl=timedelta(minutes=2)).expiry_for(T0) == T0 + timedelta(minutes=2)

    @pytest.mark.parametrize(
        ("submitted", "expected", "result"),
        [
            ("012345", "012345", True),
            ("012346", "012345", False),
            ("12345", "012345", False),
            ("012345", None, False),
        ],
    )
    def test_matches(self, submitted, expected, result):
        assert OtpGenerator.matches(submitted, expected) is result
