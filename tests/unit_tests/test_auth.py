"""Tests for the /api/auth endpoints."""

from tests.mocks.models import CAPTCHA_OK, OTHER_PASSWORD, STRONG_PASSWORD

EMAIL = "test@example.com"


def _register(client, email=EMAIL, password=STRONG_PASSWORD, **headers):
    return client.post(
        "/api/auth/register",
        json={"email": email, "name": "Tester", "password": password, "captcha_token": CAPTCHA_OK},
        headers=headers,
    )


def _login(client, email=EMAIL, password=STRONG_PASSWORD, **headers):
    return client.post(
        "/api/auth/login",
        json={"email": email, "password": password, "captcha_token": CAPTCHA_OK},
        headers=headers,
    )


def _register_and_verify(client, email=EMAIL):
    code = _register(client, email=email).json()["dev_otp"]
    return client.post("/api/auth/verify-otp", json={"email": email, "code": code})


class TestRegister:
    def test_register_success(self, client):
        resp = _register(client)
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert "check your email" in data["message"]
        assert len(data["dev_otp"]) == 6
        assert "auth_token" not in resp.cookies

    def test_register_weak_password(self, client):
        resp = _register(client, password="password")
        assert resp.status_code == 400
        data = resp.json()
        assert data["success"] is False
        assert data["error"] == "validation_failed"
        assert data["field"] == "password"

    def test_missing_fields_are_a_400_not_a_422(self, client):
        resp = client.post("/api/auth/register", json={"captcha_token": CAPTCHA_OK})
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_failed"

    def test_register_captcha_failure(self, client, doubles):
        doubles.captcha.accept = False
        resp = _register(client)
        assert resp.status_code == 400
        assert resp.json()["error"] == "captcha_failed"

    def test_register_verified_duplicate(self, client):
        _register_and_verify(client)
        resp = _register(client)
        assert resp.status_code == 400
        assert resp.json()["error"] == "account_exists"

    def test_register_rate_limit_sets_retry_after(self, client):
        for i in range(3):
            assert _register(client, email=f"user{i}@example.com").status_code == 200

        resp = _register(client, email="user3@example.com")
        assert resp.status_code == 429
        assert resp.json()["error"] == "rate_limited"
        assert resp.json()["retry_after_seconds"] == 3600
        assert resp.headers["Retry-After"] == "3600"

    def test_forwarded_ip_is_limited_separately(self, client, trusted_proxy):
        for i in range(3):
            _register(client, email=f"user{i}@example.com")
        resp = _register(client, email="user3@example.com", **{"X-Forwarded-For": "198.51.100.7, 10.0.0.1"})
        assert resp.status_code == 200

    def test_spoofed_forwarded_for_is_ignored(self, client):
        for i in range(3):
            _register(client, email=f"user{i}@example.com")
        resp = _register(client, email="user3@example.com", **{"X-Forwarded-For": "198.51.100.7"})
        assert resp.status_code == 429


class TestVerifyOtp:
    def test_verify_sets_session_cookie(self, client):
        resp = _register_and_verify(client)
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "Email verified successfully!"
        assert data["user"]["email"] == EMAIL
        assert data["user"]["email_verified"] is True
        assert "token" not in data
        assert "auth_token" in resp.cookies

        set_cookie = resp.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=strict" in set_cookie

    def test_verify_wrong_code(self, client):
        code = _register(client).json()["dev_otp"]
        wrong = "000000" if code != "000000" else "111111"

        resp = client.post("/api/auth/verify-otp", json={"email": EMAIL, "code": wrong})
        assert resp.status_code == 400
        assert resp.json()["error"] == "code_mismatch"

    def test_verify_unknown_email(self, client):
        resp = client.post("/api/auth/verify-otp", json={"email": "nobody@example.com", "code": "123456"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "account_not_found"

    def test_code_cannot_be_reused(self, client):
        code = _register(client).json()["dev_otp"]
        first = client.post("/api/auth/verify-otp", json={"email": EMAIL, "code": code})
        second = client.post("/api/auth/verify-otp", json={"email": EMAIL, "code": code})

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["error"] == "already_verified"


class TestResendOtp:
    def test_resend_for_pending_account(self, client):
        _register(client)
        resp = client.post("/api/auth/resend-otp", json={"email": EMAIL})
        assert resp.status_code == 200
        assert len(resp.json()["dev_otp"]) == 6

    def test_resend_unknown_email_is_indistinguishable(self, client):
        _register(client)
        real = client.post("/api/auth/resend-otp", json={"email": EMAIL})
        ghost = client.post("/api/auth/resend-otp", json={"email": "nobody@example.com"})

        assert real.status_code == ghost.status_code == 200
        assert real.json()["success"] is ghost.json()["success"] is True
        assert real.json()["message"] == ghost.json()["message"]
        # Only the development echo differs
        assert "dev_otp" not in ghost.json()


class TestLogin:
    def test_login_success(self, client):
        _register_and_verify(client)
        client.cookies.clear()

        resp = _login(client)
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == EMAIL
        assert "auth_token" in resp.cookies

    def test_login_wrong_password(self, client):
        _register_and_verify(client)
        resp = _login(client, password=OTHER_PASSWORD)
        assert resp.status_code == 401
        assert resp.json()["error"] == "invalid_credentials"

    def test_login_unverified(self, client):
        _register(client)
        resp = _login(client)
        assert resp.status_code == 403
        data = resp.json()
        assert data["error"] == "not_verified"
        assert data["needs_verification"] is True

    def test_login_locked(self, client, trusted_proxy):
        _register_and_verify(client)
        for _ in range(5):
            assert _login(client, password=OTHER_PASSWORD).status_code == 401

        # Another IP gets past the per-IP limit and meets the account lock
        resp = _login(client, **{"X-Forwarded-For": "198.51.100.20"})
        assert resp.status_code == 423
        data = resp.json()
        assert data["error"] == "account_locked"
        assert data["minutes_left"] == 15


class TestSession:
    def test_me_unauthenticated(self, client):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 200
        assert resp.json() == {"user": None}

    def test_me_with_session_cookie(self, client):
        _register_and_verify(client)
        resp = client.get("/api/auth/me")
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == EMAIL

    def test_me_with_forged_cookie(self, client):
        client.cookies.set("auth_token", "not-a-jwt")
        resp = client.get("/api/auth/me")
        assert resp.json() == {"user": None}

    def test_logout_clears_cookie(self, client):
        _register_and_verify(client)

        resp = client.post("/api/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["message"] == "Logged out successfully"
        assert "auth_token=" in resp.headers["set-cookie"]
        assert "max-age=0" in resp.headers["set-cookie"].lower()

        assert client.get("/api/auth/me").json() == {"user": None}
