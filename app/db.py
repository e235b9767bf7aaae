"""
SQLite database layer using aiosqlite.

Stores account records (credentials, verification and lockout state).
Tables are created automatically on first connect.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

import aiosqlite

from app.clock import as_utc
from app.config import DB_PATH
from app.errors import AccountExistsError
from app.models import Account

logger = logging.getLogger(__name__)

# ── Module-level connection ───────────────────────────────────────────────

_db: aiosqlite.Connection | None = None


async def init_db() -> None:
    """Open the database and create tables if they don't exist."""
    global _db
    db_path = Path(DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    _db = await aiosqlite.connect(str(db_path))
    _db.row_factory = aiosqlite.Row  # dict-like rows
    await _db.execute("PRAGMA journal_mode=WAL")

    await _db.executescript(_SCHEMA)
    await _db.commit()
    logger.info("Database initialized at %s", db_path)


async def close_db() -> None:
    """Close the database connection."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None
        logger.info("Database connection closed")


def get_db() -> aiosqlite.Connection:
    """Return the active database connection (must call init_db first)."""
    assert _db is not None, "Database not initialized — call init_db() first"
    return _db


# ── Schema ────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    id                TEXT PRIMARY KEY,
    email             TEXT NOT NULL UNIQUE,   -- lower-cased
    name              TEXT NOT NULL,
    password_hash     TEXT NOT NULL,
    email_verified    INTEGER NOT NULL DEFAULT 0,
    email_verified_at TEXT,
    otp_code          TEXT,
    otp_expires_at    TEXT,
    otp_attempts      INTEGER NOT NULL DEFAULT 0,
    login_attempts    INTEGER NOT NULL DEFAULT 0,
    locked_until      TEXT,
    last_login_at     TEXT,
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);
"""

_COLUMNS = (
    "id", "email", "name", "password_hash",
    "email_verified", "email_verified_at",
    "otp_code", "otp_expires_at", "otp_attempts",
    "login_attempts", "locked_until", "last_login_at",
    "created_at", "updated_at",
)


# ── Helpers ───────────────────────────────────────────────────────────────


def _iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat()


def _parse(raw: str | None) -> datetime | None:
    if raw is None:
        return None
    return as_utc(datetime.fromisoformat(raw))


def _account_params(account: Account) -> tuple:
    return (
        account.id,
        account.email,
        account.name,
        account.password_hash,
        int(account.email_verified),
        _iso(account.email_verified_at),
        account.otp_code,
        _iso(account.otp_expires_at),
        account.otp_attempts,
        account.login_attempts,
        _iso(account.locked_until),
        _iso(account.last_login_at),
        _iso(account.created_at),
        _iso(account.updated_at),
    )


async def _write(db: aiosqlite.Connection, sql: str, params: tuple) -> None:
    """Execute and commit one statement, rolling back if either step is interrupted.

    aiosqlite runs statements on its own thread, so a cancelled caller (e.g.
    a timeout) can leave the statement applied but uncommitted on the shared
    connection.  The rollback is queued behind it and discards it.
    """
    try:
        await db.execute(sql, params)
        await db.commit()
    except BaseException:
        await db.rollback()
        raise


def _row_to_account(row: aiosqlite.Row) -> Account:
    """Convert a database row to an Account model."""
    return Account(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        password_hash=row["password_hash"],
        email_verified=bool(row["email_verified"]),
        email_verified_at=_parse(row["email_verified_at"]),
        otp_code=row["otp_code"],
        otp_expires_at=_parse(row["otp_expires_at"]),
        otp_attempts=row["otp_attempts"],
        login_attempts=row["login_attempts"],
        locked_until=_parse(row["locked_until"]),
        last_login_at=_parse(row["last_login_at"]),
        created_at=_parse(row["created_at"]),
        updated_at=_parse(row["updated_at"]),
    )


# ══════════════════════════════════════════════════════════════════════════
#                       ACCOUNT REPOSITORY
# ══════════════════════════════════════════════════════════════════════════


class SqliteAccountRepository:
    """AccountRepository backed by the module-level aiosqlite connection."""

    async def find_by_email(self, email: str) -> Account | None:
        db = get_db()
        async with db.execute(
            "SELECT * FROM accounts WHERE email = ?", (email.lower(),)
        ) as cur:
            row = await cur.fetchone()
        return _row_to_account(row) if row else None

    async def find_by_id(self, account_id: str) -> Account | None:
        db = get_db()
        async with db.execute(
            "SELECT * FROM accounts WHERE id = ?", (account_id,)
        ) as cur:
            row = await cur.fetchone()
        return _row_to_account(row) if row else None

    async def insert(self, account: Account) -> Account:
        """Insert a new account.  Raises AccountExistsError on a duplicate email."""
        db = get_db()
        placeholders = ", ".join("?" for _ in _COLUMNS)
        try:
            await _write(
                db,
                f"INSERT INTO accounts ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                _account_params(account),
            )
        except aiosqlite.IntegrityError as exc:
            raise AccountExistsError(account.email) from exc
        return account

    async def save(self, account: Account) -> None:
        """Overwrite every column of an existing account."""
        db = get_db()
        assignments = ", ".join(f"{col} = ?" for col in _COLUMNS[1:])
        params = _account_params(account)
        await _write(
            db,
            f"UPDATE accounts SET {assignments} WHERE id = ?",
            (*params[1:], account.id),
        )
