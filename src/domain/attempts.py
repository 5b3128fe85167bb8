"""
Attempt ledger - Append-only audit log and rate-limit source.

Attempts are never updated once written; they are only counted over
trailing time windows. Rate-limit checks are count-then-decide, so a
burst of concurrent requests may slip slightly past a limit.
"""

import logging
from dataclasses import dataclass, field

from .models import Attempt, AttemptKind
from .ports import AttemptRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Thresholds for the identity-keyed and origin-keyed checks."""

    max_otp_generations: int = 5
    max_failed_verifications: int = 5
    window_minutes: int = 60
    origin_multiplier: int = 2
    max_registrations_per_origin: int = 20
    max_failed_logins: int = 5


@dataclass
class AttemptLedger:
    """Records attempts and answers rate-limit questions from windowed counts."""

    repository: AttemptRepository
    policy: RateLimitPolicy = field(default_factory=RateLimitPolicy)

    def record(
        self,
        kind: AttemptKind,
        identity_key: str,
        success: bool,
        origin_key: str | None = None,
        reason: str | None = None,
        phone_number: str | None = None,
        referral_code: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        self.repository.insert(
            Attempt(
                kind=kind,
                identity_key=identity_key,
                success=success,
                origin_key=origin_key,
                reason=None if success else reason,
                phone_number=phone_number,
                referral_code=referral_code,
                user_agent=user_agent,
            )
        )

    def count_in_window(
        self,
        identity_key: str,
        kind: AttemptKind,
        window_minutes: int | None = None,
        failed_only: bool = False,
    ) -> int:
        window = window_minutes or self.policy.window_minutes
        return self.repository.count_for_identity(identity_key, kind, window, failed_only)

    def count_from_origin(
        self,
        origin_key: str,
        kind: AttemptKind,
        window_minutes: int | None = None,
        failed_only: bool = False,
    ) -> int:
        window = window_minutes or self.policy.window_minutes
        return self.repository.count_for_origin(origin_key, kind, window, failed_only)

    def allows_generation(self, email: str, origin_key: str | None = None) -> bool:
        """
        Identity check: fewer than N generation attempts (any outcome) for the email.
        Origin check: fewer than multiplier * N from the origin, since one
        address may front many legitimate users (shared NAT).
        """
        limit = self.policy.max_otp_generations
        if self.count_in_window(email, AttemptKind.GENERATION) >= limit:
            logger.warning("OTP generation limit reached for identity")
            return False

        if origin_key:
            origin_limit = limit * self.policy.origin_multiplier
            if self.count_from_origin(origin_key, AttemptKind.GENERATION) >= origin_limit:
                logger.warning("OTP generation limit reached for origin %s", origin_key)
                return False

        return True

    def allows_verification(self, email: str) -> bool:
        """Only failed verifications count toward the limit."""
        failures = self.count_in_window(email, AttemptKind.VERIFICATION, failed_only=True)
        if failures >= self.policy.max_failed_verifications:
            logger.warning("OTP verification limit reached for identity")
            return False
        return True

    def allows_registration(self, origin_key: str | None) -> bool:
        if not origin_key:
            return True
        count = self.count_from_origin(origin_key, AttemptKind.REGISTRATION)
        if count >= self.policy.max_registrations_per_origin:
            logger.warning("Registration limit reached for origin %s", origin_key)
            return False
        return True

    def allows_login(self, username: str, origin_key: str | None = None) -> bool:
        """
        Only failed logins count, both for the username and for the origin.
        The origin gets multiplier * N so one address cannot spray guesses
        across many usernames.
        """
        limit = self.policy.max_failed_logins
        if self.count_in_window(username, AttemptKind.LOGIN, failed_only=True) >= limit:
            logger.warning("Login limit reached for identity")
            return False

        if origin_key:
            origin_limit = limit * self.policy.origin_multiplier
            failures = self.count_from_origin(origin_key, AttemptKind.LOGIN, failed_only=True)
            if failures >= origin_limit:
                logger.warning("Login limit reached for origin %s", origin_key)
                return False

        return True
