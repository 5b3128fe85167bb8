"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from psycopg_pool import ConnectionPool

from src.adapters.botscore.recaptcha import RecaptchaBotGate
from src.adapters.repository.postgres import PostgresStore
from src.adapters.security.hashing import BcryptPasswordHasher
from src.adapters.security.tokens import JwtTokenIssuer
from src.adapters.smtp.console import ConsoleEmailSender
from src.adapters.smtp.smtp import SmtpEmailSender
from src.config.settings import get_settings
from src.domain.attempts import AttemptLedger, RateLimitPolicy
from src.domain.exceptions import InvalidCredentials
from src.domain.otp import OtpManager
from src.domain.ports import EmailSender
from src.domain.referrals import ReferralLedger
from src.domain.registration import RegistrationService


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_store(request: Request) -> PostgresStore:
    """Create store with connection pool from app state."""
    return PostgresStore(get_pool(request))


@lru_cache
def get_email_sender() -> EmailSender:
    """Get the configured email sender (singleton)."""
    settings = get_settings()
    if settings.email_backend == "smtp":
        return SmtpEmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.smtp_from,
            username=settings.smtp_username,
            password=settings.smtp_password,
            timeout=settings.smtp_timeout_seconds,
        )
    return ConsoleEmailSender()


@lru_cache
def get_password_hasher() -> BcryptPasswordHasher:
    return BcryptPasswordHasher(rounds=get_settings().bcrypt_cost)


@lru_cache
def get_token_issuer() -> JwtTokenIssuer:
    settings = get_settings()
    return JwtTokenIssuer(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expire_days=settings.jwt_expire_days,
    )


@lru_cache
def get_bot_gate() -> RecaptchaBotGate:
    """Get the reCAPTCHA gate (singleton, owns a pooled HTTP client)."""
    settings = get_settings()
    return RecaptchaBotGate(
        secret_key=settings.recaptcha_secret_key,
        verify_url=settings.recaptcha_verify_url,
        threshold=settings.recaptcha_threshold,
        timeout=settings.http_timeout_seconds,
    )


def get_referral_ledger(request: Request) -> ReferralLedger:
    store = get_store(request)
    return ReferralLedger(
        repository=store.referrals,
        default_max_uses=get_settings().referral_default_max_uses,
    )


def get_registration_service(request: Request) -> RegistrationService:
    """
    Create registration service with injected dependencies.

    Wires together the store, ledgers, OTP manager and security adapters
    for the domain service.
    """
    settings = get_settings()
    store = get_store(request)
    policy = RateLimitPolicy(
        max_otp_generations=settings.max_otp_generations,
        max_failed_verifications=settings.max_failed_verifications,
        window_minutes=settings.rate_limit_window_minutes,
        max_registrations_per_origin=settings.max_registrations_per_origin,
        max_failed_logins=settings.max_failed_logins,
    )
    attempts = AttemptLedger(repository=store.attempts, policy=policy)
    otp = OtpManager(
        users=store.users,
        attempts=attempts,
        email_sender=get_email_sender(),
        expiry_minutes=settings.otp_expiry_minutes,
    )
    return RegistrationService(
        store=store,
        referrals=ReferralLedger(
            repository=store.referrals,
            default_max_uses=settings.referral_default_max_uses,
        ),
        attempts=attempts,
        otp=otp,
        hasher=get_password_hasher(),
        tokens=get_token_issuer(),
        bot_gate=get_bot_gate(),
        enforce_bot_check=settings.bot_check_enforced,
    )


def get_origin_key(request: Request) -> str | None:
    """
    Identify the calling origin for rate limiting.

    Uses the first X-Forwarded-For entry when present (the app is expected
    to sit behind a trusted proxy), else the socket peer address.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


# Bearer token security scheme for OpenAPI documentation
http_bearer = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    tokens: JwtTokenIssuer = Depends(get_token_issuer),
) -> int:
    """
    Resolve the session token from the Authorization header.

    Returns 401 for a missing, malformed, expired or tampered token.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return tokens.decode(credentials.credentials)
    except InvalidCredentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
