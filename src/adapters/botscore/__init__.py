"""Bot-score gate adapters."""

from .recaptcha import RecaptchaBotGate

__all__ = ["RecaptchaBotGate"]
