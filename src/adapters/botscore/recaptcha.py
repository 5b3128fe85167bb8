"""
reCAPTCHA v3 bot-score gate adapter - Implements BotScoreGate protocol.

When no secret key is configured the gate passes every request with a
score of 1.0 (development mode) instead of blocking.
"""

import logging

import httpx

from src.domain.exceptions import TransientFailure
from src.domain.models import BotCheckResult

logger = logging.getLogger(__name__)

_PLACEHOLDER_SECRET = "your-recaptcha-secret-key"


class RecaptchaBotGate:
    """Implements BotScoreGate protocol via Google's siteverify endpoint."""

    def __init__(
        self,
        secret_key: str,
        verify_url: str = "https://www.google.com/recaptcha/api/siteverify",
        threshold: float = 0.5,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._secret_key = secret_key
        self._verify_url = verify_url
        self._threshold = threshold
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def configured(self) -> bool:
        return bool(self._secret_key) and self._secret_key != _PLACEHOLDER_SECRET

    def check(self, token: str, expected_action: str) -> BotCheckResult:
        """
        Verify a client token.

        Raises:
            TransientFailure: If the provider is unreachable or times out
        """
        if not self.configured:
            logger.warning("reCAPTCHA verification skipped: secret key not configured")
            return BotCheckResult(passed=True, score=1.0)

        if not token:
            return BotCheckResult(passed=False, reason="reCAPTCHA token is required")

        try:
            response = self._client.post(
                self._verify_url,
                data={"secret": self._secret_key, "response": token},
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("reCAPTCHA verification error: %s", exc)
            raise TransientFailure(audit_reason="bot-score provider unavailable") from exc

        if not payload.get("success"):
            logger.warning("reCAPTCHA verification failed: %s", payload.get("error-codes", []))
            return BotCheckResult(passed=False, reason="reCAPTCHA verification failed")

        score = float(payload.get("score") or 0.0)

        if expected_action and payload.get("action") != expected_action:
            return BotCheckResult(passed=False, score=score, reason="reCAPTCHA action mismatch")

        if score < self._threshold:
            return BotCheckResult(
                passed=False, score=score, reason="reCAPTCHA score too low (possible bot)"
            )

        return BotCheckResult(passed=True, score=score)

    def close(self) -> None:
        self._client.close()
