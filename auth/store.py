"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
AuthStore is the repository; _row_to_account is the mapper. Flow and route
code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Session rows are keyed by SHA-256(raw session id). The raw id only ever
  lives in the client's cookie, so a leaked sessions table cannot be replayed.

Atomicity:
  Every mutation is a single UPDATE/INSERT/DELETE statement in its own
  transaction. A concurrent token verification therefore reads either the
  pre- or the post-update row, never a mix.

DB path: auth/lodgekeeper_auth.db unless DATABASE_URL is set.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import Account

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'lodgekeeper_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # normalized
    Column("password_digest", Text, nullable=False),
    Column("confirmed_at", String(32)),  # NULL = unconfirmed
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),  # SHA-256 hex of the cookie value
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _session_key(session_id: str) -> str:
    return hashlib.sha256(session_id.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuthStore:
    """Repository for Account rows and session bindings.

    Usage:
        store = AuthStore()
        account_id = store.create_account(Account(email="a@b.co", password_digest=hash_password("secret")))
        account = store.get_by_email("a@b.co")
        store.close()
    """

    def __init__(self, db_url: str = "") -> None:
        db_url = db_url or _DEFAULT_DB_URL
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its assigned database ID.

        The caller is responsible for normalizing the email. Raises
        sqlalchemy.exc.IntegrityError if the email already exists; the
        credentials layer turns that into a validation error so a concurrent
        duplicate registration fails the same way as a sequential one.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    email=account.email,
                    password_digest=account.password_digest,
                    confirmed_at=account.confirmed_at,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by normalized email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: int) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def update_password_digest(self, account_id: int, password_digest: str) -> bool:
        """Replace the stored bcrypt hash. Returns False if the account is gone."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(password_digest=password_digest, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def mark_confirmed(self, account_id: int, confirmed_at: str) -> bool:
        """Set confirmed_at if and only if it is still NULL.

        Returns True when this call performed the confirmation, False when the
        account is missing or was already confirmed (e.g. by a concurrent
        request holding the same token).
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & (_accounts.c.confirmed_at.is_(None)))
                .values(confirmed_at=confirmed_at, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Session queries
    # ------------------------------------------------------------------

    def create_session(self, session_id: str, account_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=_session_key(session_id),
                    account_id=account_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()

    def get_session_account_id(self, session_id: str) -> int | None:
        """Return the account bound to a raw session id, or None."""
        with self.engine.connect() as conn:
            value = conn.execute(
                select(_sessions.c.account_id).where(_sessions.c.id == _session_key(session_id))
            ).scalar()
        return value

    def delete_session(self, session_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == _session_key(session_id)))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        password_digest=row.password_digest,
        confirmed_at=row.confirmed_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
