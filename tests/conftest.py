"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- In-memory store and service wiring for unit tests
- PostgreSQL pool and table cleanup for integration and adversarial tests
"""

from collections.abc import Generator

import psycopg
import pytest
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import PostgresStore, create_pool, run_migrations
from src.config.settings import get_settings
from src.domain.registration import RegistrationService
from tests.fakes import Clock, FakeStore, RecordingEmailSender, StaticBotGate, build_service


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def store(clock: Clock) -> FakeStore:
    return FakeStore(clock=clock)


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def bot_gate() -> StaticBotGate:
    return StaticBotGate()


@pytest.fixture
def service(
    store: FakeStore, email_sender: RecordingEmailSender, bot_gate: StaticBotGate
) -> RegistrationService:
    return build_service(store, email_sender=email_sender, bot_gate=bot_gate)


# PostgreSQL fixtures


@pytest.fixture(scope="session")
def pool() -> Generator[ConnectionPool, None, None]:
    """
    Connection pool against DATABASE_URL with migrations applied.

    Tests using it are skipped when the database cannot be reached.
    """
    settings = get_settings()
    try:
        with psycopg.connect(settings.database_url, connect_timeout=3):
            pass
    except psycopg.OperationalError as exc:
        pytest.skip(f"PostgreSQL not reachable: {exc}")

    pool = create_pool(settings, min_size=1, max_size=25)
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def pg_store(pool: ConnectionPool) -> Generator[PostgresStore, None, None]:
    """Store on clean tables."""
    with pool.connection() as conn:
        conn.execute("TRUNCATE attempts, referrals, users RESTART IDENTITY CASCADE")
    yield PostgresStore(pool)
