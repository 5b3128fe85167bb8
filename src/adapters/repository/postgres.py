"""
PostgreSQL store adapter - Implements the Store protocol and its repositories.

This module provides the PostgreSQL implementation of the domain's
persistence ports using psycopg3 with raw SQL.

Concurrency Design:
-------------------
Serialization that matters is pushed to PostgreSQL row locks, never to an
in-process mutex:

1. **Referral quota**: ``increment_usage`` is a single conditional UPDATE
   (``used_count < max_uses``). Under READ COMMITTED a concurrent UPDATE on
   the same row waits for the first to commit, then re-evaluates the WHERE
   clause against the new row version, so the loser changes zero rows and
   its registration transaction is rolled back.

2. **OTP single use**: ``consume_otp`` clears the code and activates the
   account in one UPDATE ... RETURNING; two concurrent verifications with
   the same code cannot both match.

3. **Timeouts**: every pooled connection runs with ``statement_timeout``
   and pool checkout is bounded. psycopg's OperationalError family
   (including QueryCanceled and PoolTimeout) is surfaced as TransientFailure.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import psycopg
from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from src.config.settings import Settings
from src.domain.exceptions import DuplicateResource, TransientFailure
from src.domain.models import Attempt, AttemptKind, NewUser, Referral, User

logger = logging.getLogger(__name__)

_USER_COLUMNS = """
    id, username, email, phone_number, tax_id, password_hash, first_name, last_name,
    email_verified, account_activated, created_at, activated_at
"""

_REFERRAL_COLUMNS = """
    id, code, created_by_user_id, max_uses, used_count, expires_at,
    allowed_email_domain, is_active, created_at
"""

# Unique constraint name -> domain field
_UNIQUE_CONSTRAINTS = {
    "users_username_key": "username",
    "users_email_key": "email",
    "users_phone_number_key": "phone_number",
    "users_tax_id_key": "tax_id",
}


def create_pool(settings: Settings, **overrides) -> ConnectionPool:
    """
    Create a connection pool with bounded checkout and statement timeouts.

    Args:
        settings: Application settings
        overrides: Extra ConnectionPool keyword arguments (e.g. min_size)
    """
    options = {
        "conninfo": settings.database_url,
        "min_size": settings.pool_min_size,
        "max_size": settings.pool_max_size,
        "timeout": settings.db_pool_timeout_seconds,
        "kwargs": {"options": f"-c statement_timeout={settings.db_statement_timeout_ms}"},
        "open": True,
    }
    options.update(overrides)
    return ConnectionPool(**options)


class _PostgresRepository:
    """
    Base for repositories that either borrow a pooled connection per call
    (its own short transaction) or run on a caller's transaction connection.
    """

    def __init__(self, pool: ConnectionPool, conn: psycopg.Connection | None = None) -> None:
        self._pool = pool
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterator[psycopg.Cursor]:
        try:
            if self._conn is not None:
                with self._conn.cursor(row_factory=dict_row) as cursor:
                    yield cursor
            else:
                # Leaving pool.connection() commits, or rolls back on error
                with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                    yield cursor
        except psycopg.OperationalError as exc:
            logger.error("Database unavailable: %s", exc)
            raise TransientFailure(audit_reason=f"store unavailable: {type(exc).__name__}") from exc


class PostgresUserRepository(_PostgresRepository):
    """Implements UserRepository protocol via psycopg3."""

    def _find_one(self, column: str, value: object) -> User | None:
        sql = f"SELECT {_USER_COLUMNS} FROM users WHERE {column} = %s"
        with self._cursor() as cursor:
            cursor.execute(sql, (value,))
            row = cursor.fetchone()
        return User(**row) if row else None

    def find_by_id(self, user_id: int) -> User | None:
        return self._find_one("id", user_id)

    def find_by_email(self, email: str) -> User | None:
        return self._find_one("email", email)

    def find_by_username(self, username: str) -> User | None:
        return self._find_one("username", username)

    def find_conflicts(
        self, username: str, email: str, phone_number: str, tax_id: str | None
    ) -> set[str]:
        """Check all four unique fields in one query."""
        sql = """
            SELECT bool_or(username = %(username)s) AS username,
                   bool_or(email = %(email)s) AS email,
                   bool_or(phone_number = %(phone)s) AS phone_number,
                   bool_or(tax_id = %(tax_id)s) AS tax_id
            FROM users
            WHERE username = %(username)s
               OR email = %(email)s
               OR phone_number = %(phone)s
               OR tax_id = %(tax_id)s
        """
        params = {"username": username, "email": email, "phone": phone_number, "tax_id": tax_id}
        with self._cursor() as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone() or {}
        return {field for field, taken in row.items() if taken}

    def insert_pending(self, user: NewUser) -> User:
        """
        Insert a user in pending state (account_activated = FALSE).

        A unique violation here means a concurrent registration took the value
        between the uniqueness check and the insert.
        """
        sql = f"""
            INSERT INTO users (username, email, phone_number, tax_id, password_hash,
                               first_name, last_name, email_verified, account_activated)
            VALUES (%s, %s, %s, %s, %s, %s, %s, FALSE, FALSE)
            RETURNING {_USER_COLUMNS}
        """
        params = (
            user.username,
            user.email,
            user.phone_number,
            user.tax_id,
            user.password_hash,
            user.first_name,
            user.last_name,
        )
        try:
            with self._cursor() as cursor:
                cursor.execute(sql, params)
                row = cursor.fetchone()
        except errors.UniqueViolation as exc:
            field = _UNIQUE_CONSTRAINTS.get(exc.diag.constraint_name or "", "email")
            raise DuplicateResource(field) from exc
        return User(**row)

    def set_otp(self, email: str, code: str, expires_at: datetime) -> bool:
        sql = """
            UPDATE users
            SET otp_code = %s, otp_expires_at = %s, updated_at = NOW()
            WHERE email = %s
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (code, expires_at, email))
            return cursor.rowcount == 1

    def consume_otp(self, email: str, code: str) -> int | None:
        """Clear a matching unexpired code and activate, in one statement."""
        sql = """
            UPDATE users
            SET otp_code = NULL,
                otp_expires_at = NULL,
                email_verified = TRUE,
                account_activated = TRUE,
                activated_at = COALESCE(activated_at, NOW()),
                updated_at = NOW()
            WHERE email = %s
              AND otp_code = %s
              AND otp_expires_at > NOW()
            RETURNING id
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (email, code))
            row = cursor.fetchone()
        return row["id"] if row else None


class PostgresReferralRepository(_PostgresRepository):
    """Implements ReferralRepository protocol via psycopg3."""

    def insert(
        self,
        code: str,
        created_by_user_id: int | None,
        max_uses: int,
        expires_at: datetime | None,
        allowed_email_domain: str | None,
    ) -> Referral:
        sql = f"""
            INSERT INTO referrals (code, created_by_user_id, max_uses, expires_at, allowed_email_domain)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {_REFERRAL_COLUMNS}
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (code, created_by_user_id, max_uses, expires_at, allowed_email_domain))
            return Referral(**cursor.fetchone())

    def find_by_code(self, code: str) -> Referral | None:
        sql = f"SELECT {_REFERRAL_COLUMNS} FROM referrals WHERE code = %s"
        with self._cursor() as cursor:
            cursor.execute(sql, (code,))
            row = cursor.fetchone()
        return Referral(**row) if row else None

    def find_by_creator(self, user_id: int) -> list[Referral]:
        sql = f"""
            SELECT {_REFERRAL_COLUMNS} FROM referrals
            WHERE created_by_user_id = %s
            ORDER BY created_at DESC
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (user_id,))
            return [Referral(**row) for row in cursor.fetchall()]

    def increment_usage(self, code: str) -> bool:
        """Conditional increment; the WHERE clause is the quota re-check."""
        sql = """
            UPDATE referrals
            SET used_count = used_count + 1, updated_at = NOW()
            WHERE code = %s
              AND is_active
              AND used_count < max_uses
              AND (expires_at IS NULL OR expires_at > NOW())
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (code,))
            return cursor.rowcount == 1

    def set_active(self, code: str, owner_id: int, is_active: bool) -> bool:
        sql = """
            UPDATE referrals
            SET is_active = %s, updated_at = NOW()
            WHERE code = %s AND created_by_user_id = %s
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (is_active, code, owner_id))
            return cursor.rowcount == 1


class PostgresAttemptRepository(_PostgresRepository):
    """Implements AttemptRepository protocol via psycopg3. Insert-only."""

    def insert(self, attempt: Attempt) -> None:
        sql = """
            INSERT INTO attempts (kind, identity_key, origin_key, success, reason,
                                  phone_number, referral_code, user_agent)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        """
        params = (
            attempt.kind.value,
            attempt.identity_key,
            attempt.origin_key,
            attempt.success,
            attempt.reason,
            attempt.phone_number,
            attempt.referral_code,
            attempt.user_agent,
        )
        with self._cursor() as cursor:
            cursor.execute(sql, params)

    def count_for_identity(
        self, identity_key: str, kind: AttemptKind, window_minutes: int, failed_only: bool = False
    ) -> int:
        sql = """
            SELECT COUNT(*) AS count FROM attempts
            WHERE identity_key = %s
              AND kind = %s
              AND (NOT %s OR success = FALSE)
              AND created_at > NOW() - make_interval(mins => %s::int)
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (identity_key, kind.value, failed_only, window_minutes))
            return cursor.fetchone()["count"]

    def count_for_origin(
        self, origin_key: str, kind: AttemptKind, window_minutes: int, failed_only: bool = False
    ) -> int:
        sql = """
            SELECT COUNT(*) AS count FROM attempts
            WHERE origin_key = %s
              AND kind = %s
              AND (NOT %s OR success = FALSE)
              AND created_at > NOW() - make_interval(mins => %s::int)
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (origin_key, kind.value, failed_only, window_minutes))
            return cursor.fetchone()["count"]


class PostgresStore:
    """
    Implements Store protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool, conn: psycopg.Connection | None = None) -> None:
        """
        Initialize store with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
            conn: Connection of an open transaction, when bound to one
        """
        self._pool = pool
        self.users = PostgresUserRepository(pool, conn)
        self.referrals = PostgresReferralRepository(pool, conn)
        self.attempts = PostgresAttemptRepository(pool, conn)

    @contextmanager
    def transaction(self) -> Iterator["PostgresStore"]:
        """
        Run the block in one transaction on one pooled connection.

        Commits when the block exits normally, rolls back on any exception.
        """
        try:
            with self._pool.connection() as conn, conn.transaction():
                yield PostgresStore(self._pool, conn)
        except psycopg.OperationalError as exc:
            logger.error("Transaction aborted, database unavailable: %s", exc)
            raise TransientFailure(audit_reason=f"store unavailable: {type(exc).__name__}") from exc


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info("Migration complete: %s", sql_file.name)
        except Exception as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
