"""
Unit tests for ReferralLedger domain logic.

Tests referral issuance, fail-closed validation order, the conditional
usage increment and owner-scoped toggles against the in-memory store.
"""

import re
from datetime import timedelta

import pytest

from src.domain.exceptions import ReferralInvalid, ReferralNotFound, ValidationFailure
from src.domain.referrals import ReferralLedger, ReferralRejection, generate_referral_code
from tests.fakes import Clock, FakeStore


@pytest.fixture
def ledger(store: FakeStore, clock: Clock) -> ReferralLedger:
    return ReferralLedger(store.referrals, now=clock)


class TestReferralCodeGeneration:
    def test_code_format(self) -> None:
        """REF prefix, base-36 timestamp, 8 upper-hex random characters."""
        code = generate_referral_code()
        assert re.fullmatch(r"REF[0-9A-Z]+[0-9A-F]{8}", code)

    def test_codes_are_unique(self) -> None:
        codes = {generate_referral_code() for _ in range(500)}
        assert len(codes) == 500


class TestCreate:
    """Tests for ReferralLedger.create."""

    def test_defaults(self, ledger: ReferralLedger) -> None:
        referral = ledger.create(creator_id=1)
        assert referral.max_uses == 10
        assert referral.used_count == 0
        assert referral.is_active
        assert referral.created_by_user_id == 1

    def test_default_max_uses_is_configurable(self, store: FakeStore) -> None:
        referral = ReferralLedger(store.referrals, default_max_uses=3).create(creator_id=1)
        assert referral.max_uses == 3

    def test_max_uses_must_be_positive(self, ledger: ReferralLedger) -> None:
        with pytest.raises(ValidationFailure, match="max_uses must be at least 1"):
            ledger.create(creator_id=1, max_uses=0)

    def test_expiry_must_be_in_future(self, ledger: ReferralLedger, clock: Clock) -> None:
        with pytest.raises(ValidationFailure, match="expires_at must be in the future"):
            ledger.create(creator_id=1, expires_at=clock() - timedelta(seconds=1))

    def test_naive_expiry_treated_as_utc(self, ledger: ReferralLedger, clock: Clock) -> None:
        naive = (clock() + timedelta(days=1)).replace(tzinfo=None)
        referral = ledger.create(creator_id=1, expires_at=naive)
        assert referral.expires_at.tzinfo is not None

    def test_domain_is_normalized(self, ledger: ReferralLedger) -> None:
        referral = ledger.create(creator_id=1, allowed_domain=" Co.COM ")
        assert referral.allowed_email_domain == "co.com"

    def test_malformed_domain_rejected(self, ledger: ReferralLedger) -> None:
        with pytest.raises(ValidationFailure, match="Invalid email domain format"):
            ledger.create(creator_id=1, allowed_domain="not a domain")


class TestValidate:
    """Tests for fail-closed validation order."""

    def test_valid_code(self, ledger: ReferralLedger, store: FakeStore) -> None:
        store.add_referral("REFOK")
        check = ledger.validate("REFOK", "u@co.com")
        assert check.valid
        assert check.referral.code == "REFOK"

    @pytest.mark.parametrize("code", [None, "", "   "])
    def test_empty_code(self, ledger: ReferralLedger, code) -> None:
        check = ledger.validate(code, "u@co.com")
        assert check.rejection is ReferralRejection.REQUIRED

    def test_unknown_code(self, ledger: ReferralLedger) -> None:
        assert ledger.validate("REFNOPE", "u@co.com").rejection is ReferralRejection.NOT_FOUND

    def test_inactive_before_expired(
        self, ledger: ReferralLedger, store: FakeStore, clock: Clock
    ) -> None:
        """An inactive, expired, exhausted code reports INACTIVE first."""
        store.add_referral(
            "REFX", max_uses=1, used_count=1, is_active=False,
            expires_at=clock() + timedelta(minutes=1),
        )
        clock.advance(minutes=5)
        assert ledger.validate("REFX", "u@co.com").rejection is ReferralRejection.INACTIVE

    def test_expired(self, ledger: ReferralLedger, store: FakeStore, clock: Clock) -> None:
        store.add_referral("REFEXP", expires_at=clock() + timedelta(minutes=1))
        clock.advance(minutes=2)
        assert ledger.validate("REFEXP", "u@co.com").rejection is ReferralRejection.EXPIRED

    def test_exhausted(self, ledger: ReferralLedger, store: FakeStore) -> None:
        store.add_referral("REFFULL", max_uses=2, used_count=2)
        assert ledger.validate("REFFULL", "u@co.com").rejection is ReferralRejection.EXHAUSTED

    def test_domain_mismatch(self, ledger: ReferralLedger, store: FakeStore) -> None:
        store.add_referral("REFDOM", allowed_email_domain="co.com")
        check = ledger.validate("REFDOM", "u@other.com")
        assert check.rejection is ReferralRejection.DOMAIN_MISMATCH

    def test_domain_match_is_case_insensitive(
        self, ledger: ReferralLedger, store: FakeStore
    ) -> None:
        store.add_referral("REFDOM", allowed_email_domain="co.com")
        assert ledger.validate("REFDOM", "u@CO.Com").valid

    def test_validate_does_not_consume(self, ledger: ReferralLedger, store: FakeStore) -> None:
        store.add_referral("REFOK")
        ledger.validate("REFOK", "u@co.com")
        assert store.referrals.find_by_code("REFOK").used_count == 0


class TestIncrementUsage:
    def test_increments_once(self, ledger: ReferralLedger, store: FakeStore) -> None:
        store.add_referral("REFOK", max_uses=2)
        ledger.increment_usage("REFOK")
        assert store.referrals.find_by_code("REFOK").used_count == 1

    def test_quota_never_exceeded(self, ledger: ReferralLedger, store: FakeStore) -> None:
        """The increment re-checks the quota and refuses at max_uses."""
        store.add_referral("REFONE", max_uses=1)
        ledger.increment_usage("REFONE")
        with pytest.raises(ReferralInvalid) as exc_info:
            ledger.increment_usage("REFONE")

        assert exc_info.value.message == "Invalid referral code"
        assert "maximum uses reached" in exc_info.value.audit_reason
        assert store.referrals.find_by_code("REFONE").used_count == 1

    def test_inactive_code_not_incremented(
        self, ledger: ReferralLedger, store: FakeStore
    ) -> None:
        store.add_referral("REFOFF", is_active=False)
        with pytest.raises(ReferralInvalid):
            ledger.increment_usage("REFOFF")

    def test_bound_ledger_writes_through_other_repository(
        self, ledger: ReferralLedger
    ) -> None:
        other = FakeStore()
        other.add_referral("REFOTHER")
        ledger.bound_to(other.referrals).increment_usage("REFOTHER")
        assert other.referrals.find_by_code("REFOTHER").used_count == 1


class TestToggleAndStats:
    def test_owner_can_deactivate_and_reactivate(
        self, ledger: ReferralLedger, store: FakeStore
    ) -> None:
        store.add_referral("REFMINE", created_by_user_id=7)

        ledger.deactivate("REFMINE", owner_id=7)
        assert not store.referrals.find_by_code("REFMINE").is_active

        ledger.activate("REFMINE", owner_id=7)
        assert store.referrals.find_by_code("REFMINE").is_active

    def test_foreign_code_reported_as_not_found(
        self, ledger: ReferralLedger, store: FakeStore
    ) -> None:
        store.add_referral("REFTHEIRS", created_by_user_id=7)
        with pytest.raises(ReferralNotFound):
            ledger.deactivate("REFTHEIRS", owner_id=8)
        assert store.referrals.find_by_code("REFTHEIRS").is_active

    def test_unknown_code_not_found(self, ledger: ReferralLedger) -> None:
        with pytest.raises(ReferralNotFound):
            ledger.activate("REFNOPE", owner_id=1)

    def test_list_for_creator(self, ledger: ReferralLedger, store: FakeStore) -> None:
        store.add_referral("REFA", created_by_user_id=1)
        store.add_referral("REFB", created_by_user_id=1)
        store.add_referral("REFC", created_by_user_id=2)
        codes = {referral.code for referral in ledger.list_for_creator(1)}
        assert codes == {"REFA", "REFB"}

    def test_usage_stats(self, ledger: ReferralLedger, store: FakeStore) -> None:
        store.add_referral("REFS", max_uses=5, used_count=2, created_by_user_id=1)
        stats = ledger.usage_stats("REFS", owner_id=1)
        assert (stats.used_count, stats.max_uses, stats.remaining) == (2, 5, 3)

    def test_usage_stats_unknown(self, ledger: ReferralLedger) -> None:
        with pytest.raises(ReferralNotFound):
            ledger.usage_stats("REFNOPE", owner_id=1)

    @pytest.mark.parametrize("creator", [2, None])
    def test_usage_stats_hidden_from_non_owner(
        self, ledger: ReferralLedger, store: FakeStore, creator: int | None
    ) -> None:
        store.add_referral("REFTHEIRS", created_by_user_id=creator)
        with pytest.raises(ReferralNotFound):
            ledger.usage_stats("REFTHEIRS", owner_id=1)
