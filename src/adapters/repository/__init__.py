"""Repository adapters - Database implementations."""

from .postgres import (
    PostgresAttemptRepository,
    PostgresReferralRepository,
    PostgresStore,
    PostgresUserRepository,
    create_pool,
    run_migrations,
)

__all__ = [
    "PostgresAttemptRepository",
    "PostgresReferralRepository",
    "PostgresStore",
    "PostgresUserRepository",
    "create_pool",
    "run_migrations",
]
