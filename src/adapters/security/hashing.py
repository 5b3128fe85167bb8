"""
bcrypt password hasher adapter - Implements PasswordHasher protocol.

Timing Oracle Prevention:
-------------------------
``verify`` always runs one bcrypt comparison. When there is no stored
digest (unknown username, or an OTP-only account) it compares against a
dummy hash of the same cost, so response time does not reveal whether the
account exists.
"""

import bcrypt

_DUMMY_PASSWORD = b"dummy_password_for_timing_safety"


class BcryptPasswordHasher:
    """
    Implements PasswordHasher protocol via bcrypt.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, rounds: int = 12) -> None:
        """
        Args:
            rounds: bcrypt cost factor (>= 10 outside tests)
        """
        self._rounds = rounds
        self._dummy_hash = bcrypt.hashpw(_DUMMY_PASSWORD, bcrypt.gensalt(rounds=rounds))

    def hash(self, plaintext: str) -> str:
        return bcrypt.hashpw(plaintext.encode(), bcrypt.gensalt(rounds=self._rounds)).decode()

    def verify(self, plaintext: str, digest: str | None) -> bool:
        """Constant-work check; a None digest is compared against the dummy hash."""
        if digest is None:
            bcrypt.checkpw(plaintext.encode(), self._dummy_hash)
            return False
        try:
            return bcrypt.checkpw(plaintext.encode(), digest.encode())
        except ValueError:
            # Malformed stored digest
            return False
