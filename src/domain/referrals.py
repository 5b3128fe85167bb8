"""
Referral ledger - Issuance, validation and quota consumption of referral codes.

The ledger is the only writer of ``used_count``. Validation is a read that
fails closed; consumption re-checks the quota in the same conditional
statement that increments it, so ``used_count <= max_uses`` holds even when
two registrations race for the last use of a code.
"""

import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

from .exceptions import ReferralInvalid, ReferralNotFound, ValidationFailure
from .models import Referral
from .ports import ReferralRepository
from .validation import is_valid_domain

logger = logging.getLogger(__name__)

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_base36(number: int) -> str:
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_referral_code() -> str:
    """REF + base-36 millisecond timestamp + 8 random hex characters."""
    timestamp = _to_base36(time.time_ns() // 1_000_000)
    return f"REF{timestamp}{secrets.token_hex(4).upper()}"


class ReferralRejection(str, Enum):
    """Why a referral code was refused. Only REQUIRED is shown distinctly."""

    REQUIRED = "code required"
    NOT_FOUND = "not found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    EXHAUSTED = "maximum uses reached"
    DOMAIN_MISMATCH = "email domain not allowed"


@dataclass(frozen=True)
class ReferralCheck:
    valid: bool
    rejection: ReferralRejection | None = None
    referral: Referral | None = None


@dataclass(frozen=True)
class ReferralStats:
    used_count: int
    max_uses: int
    remaining: int


@dataclass
class ReferralLedger:
    """Domain service over the referral repository."""

    repository: ReferralRepository
    default_max_uses: int = 10
    now: Callable[[], datetime] = field(default=_utcnow)

    def bound_to(self, repository: ReferralRepository) -> "ReferralLedger":
        """Return a ledger writing through another repository (e.g. a transaction's)."""
        return replace(self, repository=repository)

    def create(
        self,
        creator_id: int,
        max_uses: int | None = None,
        expires_at: datetime | None = None,
        allowed_domain: str | None = None,
    ) -> Referral:
        """
        Issue a new referral code.

        Raises:
            ValidationFailure: On max_uses < 1, a past expiry or a malformed domain
        """
        if max_uses is None:
            max_uses = self.default_max_uses
        if max_uses < 1:
            raise ValidationFailure("max_uses must be at least 1")

        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at <= self.now():
                raise ValidationFailure("expires_at must be in the future")

        if allowed_domain is not None:
            allowed_domain = allowed_domain.strip().lower()
            if not is_valid_domain(allowed_domain):
                raise ValidationFailure("Invalid email domain format")

        referral = self.repository.insert(
            code=generate_referral_code(),
            created_by_user_id=creator_id,
            max_uses=max_uses,
            expires_at=expires_at,
            allowed_email_domain=allowed_domain,
        )
        logger.info("Referral code issued by user %s (max_uses=%s)", creator_id, max_uses)
        return referral

    def validate(self, code: str | None, candidate_email: str) -> ReferralCheck:
        """Check a code for use by candidate_email. Fails closed, first reason wins."""
        if not code or not code.strip():
            return ReferralCheck(valid=False, rejection=ReferralRejection.REQUIRED)

        referral = self.repository.find_by_code(code.strip())
        if referral is None:
            return ReferralCheck(valid=False, rejection=ReferralRejection.NOT_FOUND)

        if not referral.is_active:
            return ReferralCheck(False, ReferralRejection.INACTIVE, referral)

        if referral.expires_at is not None and referral.expires_at < self.now():
            return ReferralCheck(False, ReferralRejection.EXPIRED, referral)

        if referral.used_count >= referral.max_uses:
            return ReferralCheck(False, ReferralRejection.EXHAUSTED, referral)

        if referral.allowed_email_domain:
            email_domain = candidate_email.rpartition("@")[2].lower()
            if email_domain != referral.allowed_email_domain.lower():
                return ReferralCheck(False, ReferralRejection.DOMAIN_MISMATCH, referral)

        return ReferralCheck(valid=True, referral=referral)

    def increment_usage(self, code: str) -> None:
        """
        Consume one use of a code inside the caller's transaction.

        Raises:
            ReferralInvalid: If the conditional update changed no row. The
                caller must let this propagate so the transaction rolls back.
        """
        if not self.repository.increment_usage(code.strip()):
            logger.warning("Referral quota re-check failed at increment")
            raise ReferralInvalid(ReferralRejection.EXHAUSTED.value)

    def deactivate(self, code: str, owner_id: int) -> None:
        self._set_active(code, owner_id, False)

    def activate(self, code: str, owner_id: int) -> None:
        self._set_active(code, owner_id, True)

    def _set_active(self, code: str, owner_id: int, is_active: bool) -> None:
        if not self.repository.set_active(code, owner_id, is_active):
            raise ReferralNotFound()

    def list_for_creator(self, creator_id: int) -> list[Referral]:
        return self.repository.find_by_creator(creator_id)

    def usage_stats(self, code: str, owner_id: int) -> ReferralStats:
        """Stats for a code the caller issued. Foreign codes look the same as unknown ones."""
        referral = self.repository.find_by_code(code)
        if referral is None or referral.created_by_user_id != owner_id:
            raise ReferralNotFound()
        return ReferralStats(
            used_count=referral.used_count,
            max_uses=referral.max_uses,
            remaining=referral.remaining,
        )
