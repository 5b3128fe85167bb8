"""
Domain exceptions - Semantic error types for registration.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.

Every error carries two strings:
- ``message``: fixed public wording, safe to return to the client
- ``audit_reason``: detailed reason written to the attempt ledger only
"""


class RegistrationError(Exception):
    """Base class for registration domain errors."""

    message = "Registration failed"

    def __init__(self, message: str | None = None, audit_reason: str | None = None) -> None:
        if message is not None:
            self.message = message
        self.audit_reason = audit_reason or self.message
        super().__init__(self.message)


class ValidationFailure(RegistrationError):
    """A submitted field failed validation. Message is shown verbatim."""

    message = "Invalid input"


class BotCheckFailed(RegistrationError):
    """The bot-score gate rejected the request."""

    message = "Captcha verification failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message, audit_reason=f"Captcha verification failed: {message}")


class DuplicateResource(RegistrationError):
    """Username, email, phone number or tax-ID is already registered."""

    _MESSAGES = {
        "username": "Username already exists",
        "email": "Email already exists",
        "phone_number": "Phone number already exists",
        "tax_id": "GSTN already registered",
    }

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(self._MESSAGES.get(field, "Account already exists"))


class ReferralInvalid(RegistrationError):
    """Referral code is unknown, inactive, expired, exhausted or domain-restricted."""

    message = "Invalid referral code"

    def __init__(self, audit_reason: str | None = None) -> None:
        super().__init__(audit_reason=f"Invalid referral: {audit_reason or 'invalid'}")


class ReferralNotFound(RegistrationError):
    """Referral code does not exist or is not owned by the caller."""

    message = "Referral code not found"


class RateLimited(RegistrationError):
    """Too many attempts in the current window. Never reveals counts."""

    message = "Too many requests. Please try again later."

    def __init__(self, audit_reason: str | None = None) -> None:
        super().__init__(audit_reason=audit_reason)


class OTPInvalid(RegistrationError):
    """Wrong, expired or missing one-time code. The three are indistinguishable."""

    message = "Invalid or expired OTP"

    def __init__(self) -> None:
        super().__init__()


class NotActivated(RegistrationError):
    """Credentials are correct but the account has not been activated yet."""

    message = (
        "Account not activated. Please verify your email with the OTP sent during registration."
    )

    def __init__(self) -> None:
        super().__init__()


class InvalidCredentials(RegistrationError):
    """Unknown username or wrong password."""

    message = "Invalid credentials"

    def __init__(self) -> None:
        super().__init__()


class TransientFailure(RegistrationError):
    """A collaborator (store, email, bot gate) is unreachable or timed out."""

    message = "Service temporarily unavailable"


class OtpDeliveryFailed(TransientFailure):
    """The one-time code was stored but the email could not be delivered."""

    message = "Failed to send OTP email. Please try again."
