"""
Cloudflare Turnstile verification.

Fail-closed: a missing token, a transport error or an unexpected
response all count as a failed challenge.  The only exception is
development without a configured secret (see captcha_bypass_enabled).
"""

from __future__ import annotations

import logging

import httpx

from app.config import (
    CAPTCHA_TIMEOUT,
    TURNSTILE_SECRET_KEY,
    TURNSTILE_VERIFY_URL,
    captcha_bypass_enabled,
)

logger = logging.getLogger(__name__)


class TurnstileVerifier:
    """Async client for the Turnstile siteverify endpoint."""

    def __init__(
        self,
        secret_key: str = TURNSTILE_SECRET_KEY,
        *,
        verify_url: str = TURNSTILE_VERIFY_URL,
        timeout: float = CAPTCHA_TIMEOUT,
        allow_unconfigured: bool | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._secret_key = secret_key
        self._verify_url = verify_url
        self._allow_unconfigured = (
            captcha_bypass_enabled() if allow_unconfigured is None else allow_unconfigured
        )
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def verify(self, token: str, client_ip: str | None = None) -> bool:
        if not self._secret_key:
            if self._allow_unconfigured:
                logger.warning("[DEV] TURNSTILE_SECRET_KEY not set, CAPTCHA check skipped")
                return True
            logger.error("TURNSTILE_SECRET_KEY is not configured, rejecting CAPTCHA")
            return False

        if not token:
            return False

        form = {"secret": self._secret_key, "response": token}
        if client_ip and client_ip != "unknown":
            form["remoteip"] = client_ip

        try:
            resp = await self._client.post(self._verify_url, data=form)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError):
            logger.exception("Turnstile verification request failed")
            return False

        if not isinstance(data, dict):
            logger.error("Unexpected Turnstile response: %r", data)
            return False

        success = data.get("success") is True
        if not success:
            logger.warning("Turnstile rejected token: %s", data.get("error-codes"))
        return success
