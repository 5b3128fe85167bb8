"""
Registration domain service - Secure registration and activation pipeline.

This module contains the orchestration of referral-gated signup, OTP-gated
activation and password login.

Registration State Machine
==========================

States (forward-only, any failure short-circuits to REJECTED):
    SUBMITTED -> BOT_CHECKED -> FIELD_VALIDATED -> REFERRAL_VALIDATED
              -> UNIQUENESS_CHECKED -> PERSISTED (pending) -> OTP_ISSUED

Every terminal state, success or REJECTED, writes exactly one
``registration`` attempt to the attempt ledger.

Transaction boundary: the pending user row and the referral increment are
written in one store transaction. The increment re-checks the quota in its
own conditional UPDATE; when it changes no row the whole transaction rolls
back, so a user without a matching referral increment is never visible.

The success attempt is written right after commit. OTP issuance follows and
is best-effort: a delivery failure is logged, the outcome stays at PERSISTED,
and the user can request a new code.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum

from .attempts import AttemptLedger
from .exceptions import (
    BotCheckFailed,
    DuplicateResource,
    InvalidCredentials,
    NotActivated,
    RateLimited,
    ReferralInvalid,
    RegistrationError,
    TransientFailure,
    ValidationFailure,
)
from .models import AttemptKind, NewUser, RegistrationForm, User
from .otp import OtpManager, OtpRequestOutcome
from .ports import BotScoreGate, PasswordHasher, Store, TokenIssuer
from .referrals import ReferralLedger, ReferralRejection
from .validation import (
    normalize_gstn,
    normalize_phone,
    validate_email,
    validate_gstn,
    validate_name,
    validate_password,
    validate_phone,
    validate_username,
)

logger = logging.getLogger(__name__)

REGISTRATION_MESSAGE = (
    "Registration successful! Please verify your email with the OTP sent to activate your account."
)

# Field order for duplicate reporting
_UNIQUE_FIELDS = ("username", "email", "phone_number", "tax_id")


class RegistrationState(str, Enum):
    SUBMITTED = "submitted"
    BOT_CHECKED = "bot-checked"
    FIELD_VALIDATED = "field-validated"
    REFERRAL_VALIDATED = "referral-validated"
    UNIQUENESS_CHECKED = "uniqueness-checked"
    PERSISTED = "persisted"
    OTP_ISSUED = "otp-issued"
    REJECTED = "rejected"


@dataclass(frozen=True)
class RegistrationOutcome:
    message: str
    requires_otp: bool
    state: RegistrationState


@dataclass(frozen=True)
class VerificationOutcome:
    message: str
    token: str
    user: User


@dataclass(frozen=True)
class LoginOutcome:
    user: User
    token: str


def normalize_email(email: str) -> str:
    """
    Normalize email address for consistent storage and lookup.

    Applies: strip whitespace + lowercase
    """
    return email.strip().lower()


@dataclass
class RegistrationService:
    """
    Domain service for registration, activation and login.

    Composes the validation engine, referral ledger, attempt ledger,
    bot-score gate and OTP manager, and owns the registration transaction.
    """

    store: Store
    referrals: ReferralLedger
    attempts: AttemptLedger
    otp: OtpManager
    hasher: PasswordHasher
    tokens: TokenIssuer
    bot_gate: BotScoreGate
    enforce_bot_check: bool = False

    def register(
        self,
        form: RegistrationForm,
        origin_key: str | None,
        user_agent: str | None = None,
        bot_token: str | None = None,
    ) -> RegistrationOutcome:
        """
        Register a pending account and issue its activation code.

        Raises:
            RateLimited: Too many registrations from this origin
            BotCheckFailed: Bot-score gate rejected the token
            ValidationFailure: A field failed validation (first failure wins)
            ReferralInvalid: Referral unusable, or its quota ran out at commit
            DuplicateResource: Username, email, phone or tax-ID already taken
            TransientFailure: The store was unreachable or timed out
        """
        email = normalize_email(form.email or "")
        state = RegistrationState.SUBMITTED

        try:
            if not self.attempts.allows_registration(origin_key):
                raise RateLimited("registration origin rate limit")

            self._check_bot(bot_token, "register")
            state = RegistrationState.BOT_CHECKED

            self._validate_form(form)
            state = RegistrationState.FIELD_VALIDATED

            check = self.referrals.validate(form.referral_code, email)
            if check.rejection is ReferralRejection.REQUIRED:
                raise ValidationFailure("Referral code is required")
            if not check.valid:
                raise ReferralInvalid(check.rejection.value)
            state = RegistrationState.REFERRAL_VALIDATED

            new_user = self._new_user(form, email)
            self._ensure_unique(new_user)
            state = RegistrationState.UNIQUENESS_CHECKED

            user = self._persist(new_user, form.password, form.referral_code.strip())
            state = RegistrationState.PERSISTED
        except RegistrationError as exc:
            logger.info("Registration rejected after %s: %s", state.value, exc.audit_reason)
            self._record_registration(form, email, origin_key, user_agent, False, exc.audit_reason)
            raise

        logger.info("Registered pending user %s", user.id)
        try:
            self._record_registration(form, email, origin_key, user_agent, True)
        except TransientFailure as exc:
            logger.error("Registration attempt not recorded: %s", exc.audit_reason)

        if self._issue_initial_otp(email, origin_key):
            state = RegistrationState.OTP_ISSUED
        return RegistrationOutcome(message=REGISTRATION_MESSAGE, requires_otp=True, state=state)

    def verify_otp(
        self,
        email: str,
        code: str,
        origin_key: str | None = None,
        bot_token: str | None = None,
    ) -> VerificationOutcome:
        """
        Activate an account with its emailed code and open a session.

        Raises:
            BotCheckFailed, RateLimited, OTPInvalid
        """
        self._check_bot(bot_token, "verify_otp")
        result = self.otp.verify(normalize_email(email), code.strip(), origin_key)

        user = self.store.users.find_by_id(result.user_id)
        if user is None:
            raise InvalidCredentials()

        token = self.tokens.issue(user.id, user.username)
        return VerificationOutcome(message=result.message, token=token, user=user)

    def request_otp(
        self,
        email: str,
        origin_key: str | None = None,
        bot_token: str | None = None,
    ) -> OtpRequestOutcome:
        """
        Request a fresh activation code.

        Returns the same generic outcome whether or not the account exists.

        Raises:
            BotCheckFailed, RateLimited, OtpDeliveryFailed
        """
        self._check_bot(bot_token, "request_otp")
        return self.otp.generate(normalize_email(email), origin_key)

    def login(self, username: str, password: str, origin_key: str | None = None) -> LoginOutcome:
        """
        Password login for activated accounts.

        Failed logins are throttled per username and per origin. The password
        is always checked (against a dummy digest when the user is unknown)
        before any account state is revealed.

        Raises:
            RateLimited: Too many failed logins for this username or origin
            InvalidCredentials: Unknown user, no password set, or wrong password
            NotActivated: Correct password but account still pending
        """
        username = username.strip()
        if not self.attempts.allows_login(username, origin_key):
            raise RateLimited("login rate limit")

        user = self.store.users.find_by_username(username)
        digest = user.password_hash if user is not None else None
        password_valid = self.hasher.verify(password, digest)

        if user is None or not password_valid:
            self._record_login(username, origin_key, False, "invalid credentials")
            raise InvalidCredentials()

        if not user.account_activated:
            self._record_login(username, origin_key, False, "not activated")
            raise NotActivated()

        self._record_login(username, origin_key, True)
        return LoginOutcome(user=user, token=self.tokens.issue(user.id, user.username))

    def get_user(self, user_id: int) -> User:
        user = self.store.users.find_by_id(user_id)
        if user is None:
            raise InvalidCredentials()
        return user

    def _check_bot(self, bot_token: str | None, action: str) -> None:
        if not (self.enforce_bot_check and bot_token):
            return
        result = self.bot_gate.check(bot_token, action)
        if not result.passed:
            logger.warning("Bot-score gate rejected %s (score=%s)", action, result.score)
            raise BotCheckFailed(result.reason or "Captcha verification failed")

    def _validate_form(self, form: RegistrationForm) -> None:
        checks = []
        if form.first_name is not None:
            checks.append(validate_name(form.first_name, "First name"))
        if form.last_name is not None:
            checks.append(validate_name(form.last_name, "Last name"))
        checks.extend(
            [
                validate_username(form.username),
                validate_email(form.email.strip() if form.email else form.email),
                validate_phone(form.phone_number),
                validate_gstn(form.tax_id),
                validate_password(form.password, form.confirm_password),
            ]
        )
        for result in checks:
            if not result.is_valid:
                raise ValidationFailure(result.error)

    def _new_user(self, form: RegistrationForm, email: str) -> NewUser:
        return NewUser(
            username=form.username.strip(),
            email=email,
            phone_number=normalize_phone(form.phone_number),
            tax_id=normalize_gstn(form.tax_id) if form.tax_id else None,
            password_hash=None,
            first_name=form.first_name.strip() if form.first_name else None,
            last_name=form.last_name.strip() if form.last_name else None,
        )

    def _ensure_unique(self, user: NewUser) -> None:
        taken = self.store.users.find_conflicts(
            user.username, user.email, user.phone_number, user.tax_id
        )
        for field_name in _UNIQUE_FIELDS:
            if field_name in taken:
                raise DuplicateResource(field_name)

    def _persist(self, new_user: NewUser, password: str | None, referral_code: str) -> User:
        with self.store.transaction() as tx:
            password_hash = self.hasher.hash(password) if password else None
            user = tx.users.insert_pending(
                replace(new_user, password_hash=password_hash)
            )
            self.referrals.bound_to(tx.referrals).increment_usage(referral_code)
        return user

    def _issue_initial_otp(self, email: str, origin_key: str | None) -> bool:
        try:
            self.otp.generate(email, origin_key)
        except RegistrationError as exc:
            logger.error("Initial OTP not delivered: %s", exc.audit_reason)
            return False
        return True

    def _record_registration(
        self,
        form: RegistrationForm,
        email: str,
        origin_key: str | None,
        user_agent: str | None,
        success: bool,
        reason: str | None = None,
    ) -> None:
        self.attempts.record(
            AttemptKind.REGISTRATION,
            email,
            success,
            origin_key=origin_key,
            reason=reason,
            phone_number=form.phone_number or None,
            referral_code=form.referral_code or None,
            user_agent=user_agent,
        )

    def _record_login(
        self, username: str, origin_key: str | None, success: bool, reason: str | None = None
    ) -> None:
        self.attempts.record(
            AttemptKind.LOGIN, username, success, origin_key=origin_key, reason=reason
        )
