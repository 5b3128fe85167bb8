"""Security adapters - password hashing and session tokens."""

from .hashing import BcryptPasswordHasher
from .tokens import JwtTokenIssuer

__all__ = ["BcryptPasswordHasher", "JwtTokenIssuer"]
