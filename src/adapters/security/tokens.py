"""
JWT session token adapter - Implements TokenIssuer protocol.

Tokens are HMAC-signed with the configured secret and carry the user id
(``sub``) and username. Issued only after OTP activation or password login.
"""

from datetime import datetime, timedelta, timezone

import jwt

from src.domain.exceptions import InvalidCredentials


class JwtTokenIssuer:
    """Implements TokenIssuer protocol via PyJWT."""

    def __init__(self, secret: str, algorithm: str = "HS256", expire_days: int = 7) -> None:
        if not secret:
            raise ValueError("JWT secret is not configured")
        self._secret = secret
        self._algorithm = algorithm
        self._expire_days = expire_days

    def issue(self, user_id: int, username: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "username": username,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(days=self._expire_days)).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> int:
        """
        Returns:
            The user id in a valid, unexpired token

        Raises:
            InvalidCredentials: If the token is missing, malformed, tampered or expired
        """
        if not token:
            raise InvalidCredentials()
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp"]},
            )
            return int(payload["sub"])
        except (jwt.PyJWTError, ValueError) as exc:
            raise InvalidCredentials() from exc
