"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Protocol

from .models import Attempt, AttemptKind, BotCheckResult, NewUser, Referral, User


class UserRepository(Protocol):
    """Port interface for user persistence."""

    def find_by_id(self, user_id: int) -> User | None: ...

    def find_by_email(self, email: str) -> User | None: ...

    def find_by_username(self, username: str) -> User | None: ...

    def find_conflicts(
        self, username: str, email: str, phone_number: str, tax_id: str | None
    ) -> set[str]:
        """
        Report which unique fields are already taken, in a single round trip.

        Returns:
            Subset of {"username", "email", "phone_number", "tax_id"}
        """
        ...

    def insert_pending(self, user: NewUser) -> User:
        """
        Insert a user with account_activated = FALSE.

        Raises:
            DuplicateResource: If a unique constraint fires (concurrent duplicate)
        """
        ...

    def set_otp(self, email: str, code: str, expires_at: datetime) -> bool:
        """Store a code in the user's single OTP slot, overwriting any previous one."""
        ...

    def consume_otp(self, email: str, code: str) -> int | None:
        """
        Atomically clear a matching, unexpired code and activate the account.

        Implementations must do this in one conditional statement so that two
        concurrent calls with the same code cannot both succeed.

        Returns:
            The activated user's id, or None if no row matched
        """
        ...


class ReferralRepository(Protocol):
    """Port interface for referral code persistence."""

    def insert(
        self,
        code: str,
        created_by_user_id: int | None,
        max_uses: int,
        expires_at: datetime | None,
        allowed_email_domain: str | None,
    ) -> Referral: ...

    def find_by_code(self, code: str) -> Referral | None: ...

    def find_by_creator(self, user_id: int) -> list[Referral]: ...

    def increment_usage(self, code: str) -> bool:
        """
        Increment used_count by one only while the code is still usable.

        Returns:
            True if exactly one row changed, False if the quota re-check failed
        """
        ...

    def set_active(self, code: str, owner_id: int, is_active: bool) -> bool: ...


class AttemptRepository(Protocol):
    """Port interface for the append-only attempt ledger."""

    def insert(self, attempt: Attempt) -> None: ...

    def count_for_identity(
        self, identity_key: str, kind: AttemptKind, window_minutes: int, failed_only: bool = False
    ) -> int: ...

    def count_for_origin(
        self, origin_key: str, kind: AttemptKind, window_minutes: int, failed_only: bool = False
    ) -> int: ...


class Store(Protocol):
    """
    Port interface for the transactional store.

    Repositories on the store itself run each call in its own short
    transaction. ``transaction()`` yields a store whose repositories share
    one connection; leaving the block normally commits, raising rolls back.
    """

    users: UserRepository
    referrals: ReferralRepository
    attempts: AttemptRepository

    def transaction(self) -> AbstractContextManager["Store"]: ...


class PasswordHasher(Protocol):
    """Port interface for one-way password hashing."""

    def hash(self, plaintext: str) -> str: ...

    def verify(self, plaintext: str, digest: str | None) -> bool:
        """
        Check plaintext against digest.

        A None digest must still spend the same work as a real comparison
        and return False.
        """
        ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    def send(self, to: str, subject: str, body: str) -> bool:
        """
        Deliver a message.

        Returns:
            True on success, False on a recoverable delivery failure
        """
        ...


class BotScoreGate(Protocol):
    """Port interface for the bot-score provider."""

    def check(self, token: str, expected_action: str) -> BotCheckResult: ...


class TokenIssuer(Protocol):
    """Port interface for session token issuance."""

    def issue(self, user_id: int, username: str) -> str: ...

    def decode(self, token: str) -> int:
        """
        Returns:
            The user id carried by a valid token

        Raises:
            InvalidCredentials: If the token is malformed or expired
        """
        ...
