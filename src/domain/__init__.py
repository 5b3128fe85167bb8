"""
Domain layer - Pure business logic with zero framework imports.

This package contains the secure registration and activation pipeline:
field validation, referral and attempt ledgers, the OTP lifecycle and the
registration orchestrator. It defines its own port interfaces for
infrastructure abstraction, ensuring true hexagonal architecture decoupling.
"""

from .attempts import AttemptLedger, RateLimitPolicy
from .exceptions import (
    BotCheckFailed,
    DuplicateResource,
    InvalidCredentials,
    NotActivated,
    OtpDeliveryFailed,
    OTPInvalid,
    RateLimited,
    ReferralInvalid,
    ReferralNotFound,
    RegistrationError,
    TransientFailure,
    ValidationFailure,
)
from .models import Attempt, AttemptKind, BotCheckResult, NewUser, Referral, RegistrationForm, User
from .otp import OtpManager, OtpRequestOutcome, OtpRequestStatus, OtpVerification
from .ports import (
    AttemptRepository,
    BotScoreGate,
    EmailSender,
    PasswordHasher,
    ReferralRepository,
    Store,
    TokenIssuer,
    UserRepository,
)
from .referrals import ReferralCheck, ReferralLedger, ReferralRejection, ReferralStats
from .registration import (
    LoginOutcome,
    RegistrationOutcome,
    RegistrationService,
    RegistrationState,
    VerificationOutcome,
)

__all__ = [
    "Attempt",
    "AttemptKind",
    "AttemptLedger",
    "AttemptRepository",
    "BotCheckFailed",
    "BotCheckResult",
    "BotScoreGate",
    "DuplicateResource",
    "EmailSender",
    "InvalidCredentials",
    "LoginOutcome",
    "NewUser",
    "NotActivated",
    "OTPInvalid",
    "OtpDeliveryFailed",
    "OtpManager",
    "OtpRequestOutcome",
    "OtpRequestStatus",
    "OtpVerification",
    "PasswordHasher",
    "RateLimitPolicy",
    "RateLimited",
    "Referral",
    "ReferralCheck",
    "ReferralInvalid",
    "ReferralLedger",
    "ReferralNotFound",
    "ReferralRejection",
    "ReferralRepository",
    "ReferralStats",
    "RegistrationError",
    "RegistrationForm",
    "RegistrationOutcome",
    "RegistrationService",
    "RegistrationState",
    "Store",
    "TokenIssuer",
    "TransientFailure",
    "User",
    "UserRepository",
    "ValidationFailure",
    "VerificationOutcome",
]
