"""
gatekeeper FastAPI application.

Builds the app, configures logging from settings, and owns the process-wide
resources: the PostgreSQL pool (opened and migrated at startup) and the
bot-score gate's HTTP client.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from psycopg import OperationalError

from src.adapters.repository.postgres import create_pool, run_migrations
from src.api.dependencies import get_bot_gate
from src.api.v1 import router as v1_router
from src.config.settings import Settings, get_settings

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

tags_metadata = [
    {
        "name": "v1",
        "description": "Registration, OTP activation, login and referral codes",
    },
]


def _warn_on_weak_production_config(settings: Settings) -> None:
    if settings.environment != "production":
        return
    if not settings.bot_check_enforced:
        logger.warning("Bot-score checks are not enforced: RECAPTCHA_SECRET_KEY is unset")
    if settings.jwt_secret == Settings.model_fields["jwt_secret"].default:
        logger.warning("JWT_SECRET is the development default; session tokens are forgeable")
    if settings.email_backend == "console":
        logger.warning("Email backend is 'console': OTP codes are only written to the log")


def _release_bot_gate() -> None:
    # Cached singleton; drop it so a restarted app builds a fresh HTTP client
    get_bot_gate().close()
    get_bot_gate.cache_clear()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open and migrate the pool on startup; release pool and HTTP client on shutdown."""
    settings = get_settings()
    logger.info("gatekeeper starting (environment=%s)", settings.environment)
    _warn_on_weak_production_config(settings)

    pool = create_pool(settings)
    run_migrations(pool)
    app.state.pool = pool
    logger.info("Database pool ready (max_size=%d)", settings.pool_max_size)

    yield

    logger.info("gatekeeper shutting down")
    pool.close()
    _release_bot_gate()


app = FastAPI(
    title="gatekeeper",
    description="Referral-gated registration with OTP activation",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

app.include_router(v1_router, prefix="/v1")


@app.get("/health")
def health_check(request: Request) -> dict[str, str]:
    """Liveness plus a database round trip; 503 when the pool cannot serve a query."""
    try:
        with request.app.state.pool.connection() as conn:
            conn.execute("SELECT 1")
    except OperationalError as exc:
        logger.error("Health check failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        ) from None

    return {"status": "healthy"}
