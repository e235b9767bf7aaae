"""
Account security orchestration.

AuthService drives the registration → verification → login state
machine:

    Unverified ──verify_code──▶ Verified ──login──▶ session token
        ▲   │
        └───┘ register / resend_code (fresh code)

Lockout (Unlocked ⇄ Locked(until)) is orthogonal and lives on the
account record, so it survives restarts.

Every operation:

1.  consults the RateLimiter first and rejects abuse before any I/O,
2.  checks the CAPTCHA (register / login),
3.  serializes read-modify-write of one account behind a per-email lock,
4.  returns an AuthResult; only infrastructure failures are caught at the
    boundary and reported as INTERNAL_ERROR.

Outbound email runs as detached tasks and never affects the response.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import math
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, TypeVar

from app.clock import Clock, utc_now
from app.config import (
    EMAIL_TIMEOUT,
    LOCKOUT_MINUTES,
    LOGIN_MAX_ATTEMPTS,
    OTP_MAX_ATTEMPTS,
    REPOSITORY_TIMEOUT,
    dev_otp_enabled,
)
from app.db import SqliteAccountRepository
from app.errors import AccountExistsError, ErrorCode
from app.models import Account, AccountSummary, AuthResult
from app.rate_limit import RATE_LIMIT_POLICIES, RateLimiter, RateLimitPolicy, rate_limiter
from app.services.background import DetachedTasks
from app.services.captcha import TurnstileVerifier
from app.services.collaborators import AccountRepository, CaptchaVerifier, EmailSender
from app.services.email import SmtpEmailSender
from app.services.otp import OtpGenerator
from app.services.passwords import PasswordHasher
from app.services.sessions import SessionTokenizer
from app.services.validation import (
    normalize_email,
    sanitize_input,
    validate_email,
    validate_name,
    validate_password,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RATE_LIMIT_MESSAGES = {
    "register": "Too many registration attempts. Please try again later.",
    "login": "Too many login attempts. Please try again later.",
    "resend-code": "Too many resend attempts. Please wait before trying again.",
    "verify-code": "Too many verification attempts. Please try again later.",
}

_INVALID_CREDENTIALS = "Invalid email or password"
# Same reply whether or not the account exists.
_RESEND_SENT = "If an account with this email exists, a new verification code has been sent."


@dataclass(frozen=True)
class AuthPolicy:
    """Thresholds for the brute-force defenses."""

    otp_max_attempts: int = OTP_MAX_ATTEMPTS
    login_max_attempts: int = LOGIN_MAX_ATTEMPTS
    lockout: timedelta = timedelta(minutes=LOCKOUT_MINUTES)
    repository_timeout: float = REPOSITORY_TIMEOUT
    expose_dev_otp: bool = False


class KeyedLock:
    """One asyncio.Lock per key, discarded once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __contains__(self, key: str) -> bool:
        return key in self._locks


def _boundary(failure_message: str) -> Callable:
    """Map unexpected exceptions of an operation to INTERNAL_ERROR."""

    def decorator(func: Callable[..., Awaitable[AuthResult]]) -> Callable[..., Awaitable[AuthResult]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> AuthResult:
            try:
                return await func(*args, **kwargs)
            except Exception:
                logger.exception("%s failed", func.__name__)
                return AuthResult.failure(ErrorCode.INTERNAL_ERROR, failure_message)

        return wrapper

    return decorator


def _invalid(message: str, field: str) -> AuthResult:
    return AuthResult.failure(ErrorCode.VALIDATION_FAILED, message, field=field)


class AuthService:
    """Registration, email verification and login for password accounts."""

    def __init__(
        self,
        repository: AccountRepository,
        captcha: CaptchaVerifier,
        emails: EmailSender,
        *,
        limiter: RateLimiter | None = None,
        hasher: PasswordHasher | None = None,
        otp: OtpGenerator | None = None,
        tokenizer: SessionTokenizer | None = None,
        policies: Mapping[str, RateLimitPolicy] | None = None,
        policy: AuthPolicy | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.repository = repository
        self.captcha = captcha
        self.emails = emails
        self.limiter = limiter if limiter is not None else RateLimiter(clock)
        self.hasher = hasher or PasswordHasher()
        self.otp = otp or OtpGenerator()
        self.tokenizer = tokenizer or SessionTokenizer(clock=clock)
        self.policies = {**RATE_LIMIT_POLICIES, **(policies or {})}
        self.policy = policy or AuthPolicy()
        self._clock = clock
        self._locks = KeyedLock()
        self._outbox = DetachedTasks("auth-email")
        self._dummy_hash: str | None = None

    # ── Lifecycle ──────────────────────────────────────────────────────

    async def aclose(self) -> None:
        """Let queued emails finish, then release the CAPTCHA client."""
        await self._outbox.drain(timeout=EMAIL_TIMEOUT)
        close = getattr(self.captcha, "close", None)
        if close is not None:
            await close()

    async def wait_for_emails(self) -> None:
        await self._outbox.drain()

    # ── Register ───────────────────────────────────────────────────────

    @_boundary("Failed to create account. Please try again.")
    async def register(
        self,
        email: str,
        name: str,
        password: str,
        captcha_token: str,
        client_ip: str,
    ) -> AuthResult:
        denied = self._rate_gate("register", client_ip)
        if denied is not None:
            return denied

        if not await self.captcha.verify(captcha_token, client_ip):
            logger.warning("CAPTCHA failed for registration from %s", client_ip)
            return AuthResult.failure(
                ErrorCode.CAPTCHA_FAILED, "CAPTCHA verification failed. Please try again."
            )

        email = normalize_email(sanitize_input(email or ""))
        name = sanitize_input(name or "")
        password = password or ""
        invalid = self._validate_registration(email, name, password)
        if invalid is not None:
            return invalid

        password_hash = await self._hash_password(password)
        code = self.otp.generate_code()

        async with self._locks.hold(email):
            now = self._clock()
            existing = await self._repo(self.repository.find_by_email(email))

            if existing is not None and existing.email_verified:
                logger.info("Registration rejected: %s is already verified", email)
                return AuthResult.failure(
                    ErrorCode.ACCOUNT_EXISTS, "An account with this email already exists"
                )

            if existing is None:
                account = Account(
                    id=str(uuid.uuid4()),
                    email=email,
                    name=name,
                    password_hash=password_hash,
                    otp_code=code,
                    otp_expires_at=self.otp.expiry_for(now),
                    created_at=now,
                    updated_at=now,
                )
                try:
                    await self._repo(self.repository.insert(account))
                except AccountExistsError:
                    logger.warning("Concurrent registration for %s lost the insert race", email)
                    return AuthResult.failure(
                        ErrorCode.ACCOUNT_EXISTS, "An account with this email already exists"
                    )
                logger.info("Registered account %s", account.id)
                message = "Account created! Please check your email for the verification code."
            else:
                # Abandoned registration: take over the record with a fresh code.
                account = existing.model_copy(
                    update={
                        "name": name,
                        "password_hash": password_hash,
                        "otp_code": code,
                        "otp_expires_at": self.otp.expiry_for(now),
                        "otp_attempts": 0,
                        "updated_at": now,
                    }
                )
                await self._repo(self.repository.save(account))
                logger.info("Re-initialized unverified account %s", account.id)
                message = "Verification email sent. Please check your inbox."

        self._send_in_background(
            self.emails.send_otp(account.email, code, account.name), kind="verification", email=email
        )
        return AuthResult.success(message, dev_otp=self._dev_otp(code, email))

    @staticmethod
    def _validate_registration(email: str, name: str, password: str) -> AuthResult | None:
        for field, value in (("email", email), ("name", name), ("password", password)):
            if not value:
                return _invalid("All fields are required", field)
        if not validate_email(email):
            return _invalid("Invalid email format", "email")
        if not validate_name(name):
            return _invalid("Name must be between 2 and 100 characters", "name")
        errors = validate_password(password)
        if errors:
            return _invalid(errors[0], "password")
        return None

    # ── Verify code ────────────────────────────────────────────────────

    @_boundary("Verification failed. Please try again.")
    async def verify_code(self, email: str, code: str, client_ip: str) -> AuthResult:
        email = normalize_email(email or "")
        denied = self._rate_gate("verify-code", email)
        if denied is not None:
            return denied

        code = (code or "").strip()
        if not email:
            return _invalid("Email and verification code are required", "email")
        if not code:
            return _invalid("Email and verification code are required", "code")

        async with self._locks.hold(email):
            now = self._clock()
            account = await self._repo(self.repository.find_by_email(email))

            if account is None:
                return AuthResult.failure(
                    ErrorCode.ACCOUNT_NOT_FOUND, "No account found with this email"
                )
            if account.email_verified:
                return AuthResult.failure(
                    ErrorCode.ALREADY_VERIFIED, "Email is already verified. Please log in."
                )
            if (
                account.otp_code is None
                or account.otp_expires_at is None
                or now > account.otp_expires_at
            ):
                return AuthResult.failure(
                    ErrorCode.CODE_EXPIRED,
                    "Verification code has expired. Please request a new one.",
                )
            if account.otp_attempts >= self.policy.otp_max_attempts:
                return AuthResult.failure(
                    ErrorCode.TOO_MANY_CODE_ATTEMPTS,
                    "Too many failed attempts. Please request a new code.",
                )

            if not self.otp.matches(code, account.otp_code):
                failed = account.model_copy(
                    update={"otp_attempts": account.otp_attempts + 1, "updated_at": now}
                )
                await self._repo(self.repository.save(failed))
                logger.info(
                    "Wrong verification code for %s (%d/%d)",
                    account.id, failed.otp_attempts, self.policy.otp_max_attempts,
                )
                return AuthResult.failure(ErrorCode.CODE_MISMATCH, "Invalid verification code")

            # Single save: the code is never cleared without marking verified.
            verified = account.model_copy(
                update={
                    "email_verified": True,
                    "email_verified_at": now,
                    "otp_code": None,
                    "otp_expires_at": None,
                    "otp_attempts": 0,
                    "updated_at": now,
                }
            )
            await self._repo(self.repository.save(verified))

        logger.info("Account %s verified", verified.id)
        token = self.tokenizer.issue(verified.id, verified.email, now)
        self._send_in_background(
            self.emails.send_welcome(verified.email, verified.name), kind="welcome", email=email
        )
        return AuthResult.success(
            "Email verified successfully!", user=verified.summary(), token=token
        )

    # ── Resend code ────────────────────────────────────────────────────

    @_boundary("Failed to resend code. Please try again.")
    async def resend_code(self, email: str, client_ip: str) -> AuthResult:
        email = normalize_email(email or "")
        denied = self._rate_gate("resend-code", email)
        if denied is not None:
            return denied

        if not email:
            return _invalid("Email is required", "email")

        async with self._locks.hold(email):
            now = self._clock()
            account = await self._repo(self.repository.find_by_email(email))

            if account is None:
                return AuthResult.success(_RESEND_SENT)
            if account.email_verified:
                return AuthResult.failure(
                    ErrorCode.ALREADY_VERIFIED, "Email is already verified. Please log in."
                )

            code = self.otp.generate_code()
            account = account.model_copy(
                update={
                    "otp_code": code,
                    "otp_expires_at": self.otp.expiry_for(now),
                    "otp_attempts": 0,
                    "updated_at": now,
                }
            )
            await self._repo(self.repository.save(account))

        logger.info("Issued new verification code for %s", account.id)
        self._send_in_background(
            self.emails.send_otp(account.email, code, account.name), kind="verification", email=email
        )
        return AuthResult.success(_RESEND_SENT, dev_otp=self._dev_otp(code, email))

    # ── Login ──────────────────────────────────────────────────────────

    @_boundary("Login failed. Please try again.")
    async def login(
        self,
        email: str,
        password: str,
        captcha_token: str,
        client_ip: str,
    ) -> AuthResult:
        denied = self._rate_gate("login", client_ip)
        if denied is not None:
            return denied

        if not await self.captcha.verify(captcha_token, client_ip):
            logger.warning("CAPTCHA failed for login from %s", client_ip)
            return AuthResult.failure(
                ErrorCode.CAPTCHA_FAILED, "CAPTCHA verification failed. Please try again."
            )

        email = normalize_email(email or "")
        password = password or ""
        if not email:
            return _invalid("Email and password are required", "email")
        if not password:
            return _invalid("Email and password are required", "password")

        async with self._locks.hold(email):
            account = await self._repo(self.repository.find_by_email(email))
            if account is None:
                await self._burn_password_check(password)
                return AuthResult.failure(ErrorCode.INVALID_CREDENTIALS, _INVALID_CREDENTIALS)

            now = self._clock()
            cycle_reset = False
            if account.locked_until is not None:
                if account.locked_until > now:
                    minutes_left = max(1, math.ceil((account.locked_until - now).total_seconds() / 60))
                    return AuthResult.failure(
                        ErrorCode.ACCOUNT_LOCKED,
                        f"Account is locked. Please try again in {minutes_left} "
                        f"minute{'s' if minutes_left > 1 else ''}.",
                        minutes_left=minutes_left,
                    )
                # Lock has lapsed: a new attempt cycle starts.
                account = account.model_copy(update={"login_attempts": 0, "locked_until": None})
                cycle_reset = True

            if not await self._check_password(password, account.password_hash):
                attempts = account.login_attempts + 1
                update: dict[str, Any] = {"login_attempts": attempts, "updated_at": now}
                if attempts >= self.policy.login_max_attempts:
                    update["locked_until"] = now + self.policy.lockout
                    logger.warning(
                        "Account %s locked until %s after %d failed logins",
                        account.id, update["locked_until"].isoformat(), attempts,
                    )
                await self._repo(self.repository.save(account.model_copy(update=update)))
                return AuthResult.failure(ErrorCode.INVALID_CREDENTIALS, _INVALID_CREDENTIALS)

            if not account.email_verified:
                if cycle_reset:
                    await self._repo(self.repository.save(account.model_copy(update={"updated_at": now})))
                return AuthResult.failure(
                    ErrorCode.NOT_VERIFIED,
                    "Please verify your email before logging in.",
                    needs_verification=True,
                )

            account = account.model_copy(
                update={
                    "login_attempts": 0,
                    "locked_until": None,
                    "last_login_at": now,
                    "updated_at": now,
                }
            )
            await self._repo(self.repository.save(account))

        logger.info("Account %s logged in", account.id)
        token = self.tokenizer.issue(account.id, account.email, now)
        return AuthResult.success("Login successful!", user=account.summary(), token=token)

    # ── Sessions ───────────────────────────────────────────────────────

    async def current_account(self, token: str | None) -> AccountSummary | None:
        """Resolve a session token to its account, or None."""
        claims = self.tokenizer.verify(token or "")
        if claims is None:
            return None
        try:
            account = await self._repo(self.repository.find_by_id(claims.account_id))
        except Exception:
            logger.exception("Session lookup failed for %s", claims.account_id)
            return None
        return account.summary() if account is not None else None

    # ── Internals ──────────────────────────────────────────────────────

    def _rate_gate(self, action: str, identifier: str) -> AuthResult | None:
        result = self.limiter.hit(self.policies[action], identifier)
        if result.allowed:
            return None
        retry_after = max(1, math.ceil((result.reset_at - self._clock()).total_seconds()))
        return AuthResult.failure(
            ErrorCode.RATE_LIMITED,
            _RATE_LIMIT_MESSAGES[action],
            retry_after_seconds=retry_after,
        )

    async def _repo(self, call: Awaitable[T]) -> T:
        return await asyncio.wait_for(call, timeout=self.policy.repository_timeout)

    async def _hash_password(self, password: str) -> str:
        return await asyncio.to_thread(self.hasher.hash, password)

    async def _check_password(self, password: str, password_hash: str) -> bool:
        return await asyncio.to_thread(self.hasher.verify, password, password_hash)

    async def _burn_password_check(self, password: str) -> None:
        # Unknown emails cost one bcrypt verify, like a wrong password.
        if self._dummy_hash is None:
            self._dummy_hash = await self._hash_password(uuid.uuid4().hex)
        await self._check_password(password, self._dummy_hash)

    def _send_in_background(self, sending: Awaitable[bool], *, kind: str, email: str) -> None:
        async def deliver() -> None:
            if not await sending:
                logger.error("Failed to deliver %s email to %s", kind, email)

        self._outbox.spawn(deliver(), label=kind)

    def _dev_otp(self, code: str, email: str) -> str | None:
        if not self.policy.expose_dev_otp:
            return None
        logger.warning("[DEV] Returning verification code for %s in the API response", email)
        return code


def build_auth_service() -> AuthService:
    """Wire AuthService to SQLite, Turnstile and SMTP."""
    return AuthService(
        SqliteAccountRepository(),
        TurnstileVerifier(),
        SmtpEmailSender(),
        limiter=rate_limiter,
        policy=AuthPolicy(expose_dev_otp=dev_otp_enabled()),
    )
