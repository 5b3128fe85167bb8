"""
Adversarial tests for race condition attack prevention.

Verifies that concurrent operations against PostgreSQL cannot:
- Consume a referral code beyond its quota
- Activate an account twice with one code
- Create two accounts with the same identity

Security rationale:
- Check-then-act gaps let simultaneous requests all pass a quota check
- The conditional UPDATE re-evaluates ``used_count < max_uses`` under the
  row lock, so exactly max_uses registrations can commit
- Unique constraints are the final arbiter for identity fields
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from src.adapters.repository.postgres import PostgresStore
from src.domain.exceptions import DuplicateResource, ReferralInvalid
from src.domain.models import NewUser
from src.domain.validation import gstn_check_character
from tests.fakes import build_service, make_form

pytestmark = pytest.mark.adversarial


def racer_form(i: int, referral_code: str):
    prefix = f"29ABCDE{i:04d}F1Z"
    return make_form(
        username=f"racer{i}",
        email=f"racer{i}@co.com",
        phone_number=f"98765{i:05d}",
        tax_id=prefix + gstn_check_character(prefix),
        referral_code=referral_code,
    )


def run_concurrently(count: int, attack) -> list[object]:
    """Start ``count`` calls of attack(i) behind a barrier; collect results or errors."""
    barrier = threading.Barrier(count)

    def wrapped(i: int) -> object:
        barrier.wait()
        try:
            return attack(i)
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=count) as executor:
        return list(executor.map(wrapped, range(count)))


class TestReferralQuotaRace:
    """Simultaneous registrations against one referral code."""

    @pytest.mark.parametrize(("max_uses", "attackers"), [(1, 10), (3, 12)])
    def test_quota_never_exceeded(
        self, pg_store: PostgresStore, max_uses: int, attackers: int
    ) -> None:
        pg_store.referrals.insert("REFRACE", None, max_uses, None, None)
        service = build_service(pg_store)

        results = run_concurrently(
            attackers,
            lambda i: service.register(racer_form(i, "REFRACE"), origin_key=f"10.0.0.{i}"),
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == max_uses
        assert all(isinstance(r, ReferralInvalid) for r in failures), failures

        assert pg_store.referrals.find_by_code("REFRACE").used_count == max_uses
        registered = [
            pg_store.users.find_by_email(f"racer{i}@co.com") for i in range(attackers)
        ]
        assert sum(user is not None for user in registered) == max_uses

    def test_same_identity_registers_once(self, pg_store: PostgresStore) -> None:
        """Five copies of one form: one account, one quota unit consumed."""
        pg_store.referrals.insert("REFRACE", None, 10, None, None)
        service = build_service(pg_store)

        results = run_concurrently(
            5, lambda i: service.register(racer_form(0, "REFRACE"), origin_key=f"10.0.1.{i}")
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 4
        assert all(isinstance(r, DuplicateResource) for r in failures), failures
        assert pg_store.referrals.find_by_code("REFRACE").used_count == 1


class TestOtpConsumptionRace:
    def test_code_consumed_exactly_once(self, pg_store: PostgresStore) -> None:
        user = pg_store.users.insert_pending(
            NewUser(
                username="target",
                email="target@co.com",
                phone_number="9876543210",
                tax_id=None,
                password_hash=None,
            )
        )
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=10)
        pg_store.users.set_otp("target@co.com", "482913", expires_at)

        results = run_concurrently(
            8, lambda i: pg_store.users.consume_otp("target@co.com", "482913")
        )

        assert results.count(user.id) == 1
        assert results.count(None) == 7
