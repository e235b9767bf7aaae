"""
Session tokens – signed JWTs carrying account identity and expiry.

The tokenizer is transport-agnostic; the HTTP layer delivers the token
as an HTTP-only cookie (see app.dependencies).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from app.clock import Clock, utc_now
from app.config import JWT_ALGORITHM, JWT_SECRET, SESSION_EXPIRY_DAYS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionClaims:
    account_id: str
    email: str
    issued_at: datetime
    expires_at: datetime


class SessionTokenizer:
    """Issues and verifies session tokens.

    verify() answers None for every kind of failure (bad signature,
    malformed payload, expiry) so callers cannot tell them apart.
    """

    def __init__(
        self,
        secret: str = JWT_SECRET,
        *,
        algorithm: str = JWT_ALGORITHM,
        ttl: timedelta = timedelta(days=SESSION_EXPIRY_DAYS),
        clock: Clock = utc_now,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self.ttl = ttl
        self._clock = clock

    def issue(self, account_id: str, email: str, now: datetime | None = None) -> str:
        issued_at = now or self._clock()
        payload = {
            "sub": account_id,
            "email": email,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str, now: datetime | None = None) -> SessionClaims | None:
        if not token:
            return None
        try:
            # Time claims are checked below against our own clock.
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": ["sub", "email", "iat", "exp"],
                },
            )
        except jwt.PyJWTError as exc:
            logger.debug("Rejected session token: %s", type(exc).__name__)
            return None

        try:
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            return None

        account_id, email = payload["sub"], payload["email"]
        if not isinstance(account_id, str) or not isinstance(email, str):
            return None

        if (now or self._clock()) >= expires_at:
            return None

        return SessionClaims(
            account_id=account_id,
            email=email,
            issued_at=issued_at,
            expires_at=expires_at,
        )
