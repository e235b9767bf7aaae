"""
Interfaces of the external collaborators AuthService depends on.

Concrete implementations live in app.db (accounts), app.services.captcha
and app.services.email; tests substitute in-memory doubles.
"""

from __future__ import annotations

from typing import Protocol

from app.models import Account


class AccountRepository(Protocol):
    """Account store keyed by normalized email."""

    async def find_by_email(self, email: str) -> Account | None:
        ...

    async def find_by_id(self, account_id: str) -> Account | None:
        ...

    async def insert(self, account: Account) -> Account:
        """Store a new account.  Raises AccountExistsError on a duplicate email."""
        ...

    async def save(self, account: Account) -> None:
        """Overwrite the full record.  Callers serialize read-modify-write."""
        ...


class CaptchaVerifier(Protocol):
    async def verify(self, token: str, client_ip: str | None = None) -> bool:
        """True only for a confirmed human; errors count as failure."""
        ...


class EmailSender(Protocol):
    """Outbound email.  Implementations report failure by returning False."""

    async def send_otp(self, email: str, code: str, name: str) -> bool:
        ...

    async def send_welcome(self, email: str, name: str) -> bool:
        ...
