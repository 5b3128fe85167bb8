"""
Console email sender adapter - Implements EmailSender protocol.

Development backend (EMAIL_BACKEND=console): instead of delivering mail it
writes each message, OTP code included, to the application log.
"""

import logging

logger = logging.getLogger(__name__)


class ConsoleEmailSender:
    """
    Implements EmailSender protocol by logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Never use in production: codes end up in the log stream.
    """

    def send(self, to: str, subject: str, body: str) -> bool:
        """
        Write the message to the log at INFO (visible in docker-compose logs).

        Returns:
            Always True; there is no delivery to fail
        """
        logger.info("[EMAIL] To: %s Subject: %s\n%s", to, subject, body)
        return True
