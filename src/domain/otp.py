"""
OTP lifecycle - Issue, deliver and consume one-time email codes.

Per-user states:
- no-code: the OTP slot is empty
- code-pending: a code is stored with an absolute expiry

Transitions:
    no-code      -> code-pending  (generate)
    code-pending -> code-pending  (generate again: the new code overwrites)
    code-pending -> no-code       (verify with the right code before expiry;
                                   the account is activated in the same statement)

Anti-enumeration: ``generate`` for an unknown or already activated email
returns the same outcome type and message as any other suppressed request.
Callers assert on the OtpRequestOutcome, never on control flow.
"""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from .attempts import AttemptLedger
from .exceptions import OtpDeliveryFailed, OTPInvalid, RateLimited
from .models import AttemptKind
from .ports import EmailSender, UserRepository

logger = logging.getLogger(__name__)

GENERIC_OTP_MESSAGE = "If an account with that email exists, an OTP has been sent."
OTP_SENT_MESSAGE = "OTP has been sent."
OTP_VERIFIED_MESSAGE = "Email verified successfully! Your account is now activated."
OTP_EMAIL_SUBJECT = "Your verification code"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_otp() -> str:
    """Uniformly random 6-digit code in [100000, 999999] from the OS CSPRNG."""
    return str(100000 + secrets.randbelow(900000))


class OtpRequestStatus(str, Enum):
    SENT = "sent"
    SUPPRESSED = "suppressed"


@dataclass(frozen=True)
class OtpRequestOutcome:
    """Response contract for an OTP request."""

    status: OtpRequestStatus
    message: str


@dataclass(frozen=True)
class OtpVerification:
    message: str
    user_id: int


@dataclass
class OtpManager:
    """Domain service owning the OTP slot of each user."""

    users: UserRepository
    attempts: AttemptLedger
    email_sender: EmailSender
    expiry_minutes: int = 10
    now: Callable[[], datetime] = field(default=_utcnow)

    def generate(self, email: str, origin_key: str | None = None) -> OtpRequestOutcome:
        """
        Issue and email a new code.

        Raises:
            RateLimited: If the identity or origin exceeded the generation limit
            OtpDeliveryFailed: If the code was stored but could not be emailed
        """
        if not self.attempts.allows_generation(email, origin_key):
            self._record(AttemptKind.GENERATION, email, origin_key, False, "rate limited")
            raise RateLimited("OTP generation rate limit")

        user = self.users.find_by_email(email)
        if user is None or user.account_activated:
            self._record(AttemptKind.GENERATION, email, origin_key, False, "suppressed")
            return OtpRequestOutcome(OtpRequestStatus.SUPPRESSED, GENERIC_OTP_MESSAGE)

        code = generate_otp()
        expires_at = self.now() + timedelta(minutes=self.expiry_minutes)
        self.users.set_otp(email, code, expires_at)

        if not self.email_sender.send(email, OTP_EMAIL_SUBJECT, self._body(code)):
            logger.error("Failed to deliver OTP email for user %s", user.id)
            self._record(AttemptKind.GENERATION, email, origin_key, False, "delivery failed")
            raise OtpDeliveryFailed(audit_reason="delivery failed")

        self._record(AttemptKind.GENERATION, email, origin_key, True)
        logger.info("OTP issued for user %s", user.id)
        return OtpRequestOutcome(OtpRequestStatus.SENT, OTP_SENT_MESSAGE)

    def verify(self, email: str, code: str, origin_key: str | None = None) -> OtpVerification:
        """
        Consume a code and activate the account.

        Raises:
            RateLimited: After too many failed verifications (store not consulted)
            OTPInvalid: Wrong, expired or absent code
        """
        if not self.attempts.allows_verification(email):
            raise RateLimited("OTP verification rate limit")

        user_id = None
        if code and code.isascii() and code.isdigit():
            user_id = self.users.consume_otp(email, code)

        if user_id is None:
            self._record(AttemptKind.VERIFICATION, email, origin_key, False, "invalid or expired")
            raise OTPInvalid()

        self._record(AttemptKind.VERIFICATION, email, origin_key, True)
        logger.info("Account %s activated by OTP", user_id)
        return OtpVerification(message=OTP_VERIFIED_MESSAGE, user_id=user_id)

    def _record(
        self,
        kind: AttemptKind,
        email: str,
        origin_key: str | None,
        success: bool,
        reason: str | None = None,
    ) -> None:
        self.attempts.record(kind, email, success, origin_key=origin_key, reason=reason)

    def _body(self, code: str) -> str:
        return (
            f"Your verification code is {code}.\n\n"
            f"It expires in {self.expiry_minutes} minute(s).\n\n"
            "If you did not request this code, you can ignore this email."
        )
