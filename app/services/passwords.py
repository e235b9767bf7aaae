"""Password hashing with bcrypt."""

from __future__ import annotations

import logging

import bcrypt

from app.config import BCRYPT_ROUNDS

logger = logging.getLogger(__name__)


class PasswordHasher:
    """One-way, salted password hashing.

    Every call to hash() draws a fresh salt, which bcrypt embeds in the
    digest, so two hashes of the same password differ.  *rounds* is the
    log2 cost factor.
    """

    def __init__(self, rounds: int = BCRYPT_ROUNDS) -> None:
        self.rounds = rounds

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """True if *password* matches *password_hash*; False for malformed digests."""
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            logger.warning("Rejected malformed or oversized password hash input")
            return False
