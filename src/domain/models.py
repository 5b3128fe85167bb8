"""
Domain models - Entities and value objects for registration.

Plain dataclasses shared between the domain services and the ports.
Adapters map rows onto these types; nothing here touches I/O.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class AttemptKind(str, Enum):
    """Kinds of attempts recorded in the attempt ledger."""

    REGISTRATION = "registration"
    GENERATION = "generation"
    VERIFICATION = "verification"
    LOGIN = "login"


@dataclass(frozen=True)
class User:
    """A registered identity. ``account_activated`` only ever moves False -> True."""

    id: int
    username: str
    email: str
    phone_number: str
    tax_id: str | None
    password_hash: str | None
    first_name: str | None = None
    last_name: str | None = None
    email_verified: bool = False
    account_activated: bool = False
    created_at: datetime | None = None
    activated_at: datetime | None = None


@dataclass(frozen=True)
class NewUser:
    """Normalized values for a user row about to be inserted in pending state."""

    username: str
    email: str
    phone_number: str
    tax_id: str | None
    password_hash: str | None
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class Referral:
    """A referral code and its usage quota."""

    id: int
    code: str
    created_by_user_id: int | None
    max_uses: int
    used_count: int
    expires_at: datetime | None = None
    allowed_email_domain: str | None = None
    is_active: bool = True
    created_at: datetime | None = None

    @property
    def remaining(self) -> int:
        return max(self.max_uses - self.used_count, 0)


@dataclass(frozen=True)
class Attempt:
    """An append-only attempt ledger entry."""

    kind: AttemptKind
    identity_key: str
    success: bool
    origin_key: str | None = None
    reason: str | None = None
    phone_number: str | None = None
    referral_code: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class RegistrationForm:
    """Raw registration fields as submitted by the client."""

    username: str
    email: str
    phone_number: str
    referral_code: str
    password: str | None = None
    confirm_password: str | None = None
    tax_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class BotCheckResult:
    """Outcome of a bot-score gate check."""

    passed: bool
    score: float = 0.0
    reason: str | None = None
